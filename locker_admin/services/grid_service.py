"""
Locker grid service.

The grid is drawn from two strips of lockers:
- row-axis lockers (row > 0, column == 0) label the rows, one per row
- column-axis lockers (row == 0, column > 0) fill the remaining cells,
  column-major, ``ceil(len(columns) / len(rows))`` slots per row

Growing an axis appends the next index; shrinking removes the highest index,
never the last remaining locker and never an occupied one. Layout is always
derived from the full locker snapshot.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .. import config
from ..errors import LastElementError, NotFoundError, OccupiedAxisElementError
from ..models import Assignment, Locker, locker_id_for, numeric_value

_logger = logging.getLogger(__name__)
_logger.setLevel(logging.INFO)

ROW_NUMBER_BASE = 1000
COLUMN_NUMBER_BASE = 1006
INITIAL_ROWS = 6
INITIAL_COLUMNS = 10

_AXIS_BASE = {'row': ROW_NUMBER_BASE, 'column': COLUMN_NUMBER_BASE}


@dataclass
class GridRow:
    row_locker: Locker
    cells: List[Optional[Locker]] = field(default_factory=list)


@dataclass
class GridLayout:
    row_axis: List[Locker]
    column_axis: List[Locker]
    column_slots: int
    rows: List[GridRow]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'columnSlots': self.column_slots,
            'rows': [
                {
                    'rowLocker': row.row_locker.to_dict(),
                    'cells': [cell.to_dict() if cell else None for cell in row.cells],
                }
                for row in self.rows
            ],
        }


def sort_lockers(lockers: Iterable[Locker]) -> List[Locker]:
    """Display order: numeric value of ``number``, not lexicographic."""
    return sorted(lockers, key=lambda l: (numeric_value(l.number), l.id))


def partition(lockers: Iterable[Locker]) -> Tuple[List[Locker], List[Locker]]:
    """Split lockers into (row_axis, column_axis), each sorted by its axis index."""
    row_axis = [l for l in lockers if l.row > 0 and l.column == 0]
    column_axis = [l for l in lockers if l.row == 0 and l.column > 0]
    row_axis.sort(key=lambda l: l.row)
    column_axis.sort(key=lambda l: l.column)
    return row_axis, column_axis


def build_layout(lockers: Iterable[Locker]) -> GridLayout:
    """
    Derive the display matrix.

    Cell ``(i, c)`` holds ``column_axis[c * len(row_axis) + i]``; the index
    formula keeps existing cells in place when either axis grows. Missing
    cells are ``None`` placeholders.
    """
    row_axis, column_axis = partition(lockers)
    row_count = len(row_axis)
    if row_count == 0:
        return GridLayout(row_axis=row_axis, column_axis=column_axis, column_slots=0, rows=[])

    column_slots = math.ceil(len(column_axis) / row_count)
    rows = []
    for i, row_locker in enumerate(row_axis):
        cells = []
        for col_index in range(column_slots):
            idx = col_index * row_count + i
            cells.append(column_axis[idx] if idx < len(column_axis) else None)
        rows.append(GridRow(row_locker=row_locker, cells=cells))
    return GridLayout(row_axis=row_axis, column_axis=column_axis, column_slots=column_slots, rows=rows)


def find_axis_violations(lockers: Iterable[Locker]) -> List[str]:
    """Describe every broken grid invariant (empty list for a valid grid)."""
    lockers = list(lockers)
    problems = []
    for locker in lockers:
        if locker.axis is None:
            problems.append(f'{locker.id}: exactly one of row/column must be nonzero')
    row_axis, column_axis = partition(lockers)
    for name, axis, attr in (('row', row_axis, 'row'), ('column', column_axis, 'column')):
        indices = [getattr(l, attr) for l in axis]
        if len(set(indices)) != len(indices):
            problems.append(f'{name} axis has duplicate indices')
        if sorted(set(indices)) != list(range(1, len(set(indices)) + 1)):
            problems.append(f'{name} axis is not a dense sequence starting at 1')
    return problems


def lockers_from_docs(docs: Iterable[Dict[str, Any]]) -> List[Locker]:
    return sort_lockers(Locker.from_dict(d, d.get('id')) for d in docs)


def load_lockers(repo) -> List[Locker]:
    return lockers_from_docs(repo.list(config.LOCKERS))


def get_locker(repo, locker_id: str) -> Locker:
    doc = repo.get(config.LOCKERS, locker_id)
    if doc is None:
        raise NotFoundError(f'Locker {locker_id} not found', code='LOCKER_NOT_FOUND')
    return Locker.from_dict(doc, locker_id)


def _axis_locker(axis: str, index: int) -> Locker:
    number = str(_AXIS_BASE[axis] + index)
    return Locker(
        id=locker_id_for(number),
        number=number,
        row=index if axis == 'row' else 0,
        column=index if axis == 'column' else 0,
    )


def _seed_fields(locker: Locker) -> Dict[str, Any]:
    return {
        'id': locker.id,
        'number': locker.number,
        'row': locker.row,
        'column': locker.column,
        'isOccupied': False,
    }


def seed_lockers() -> List[Locker]:
    """Default grid: rows 1001-1006 and columns 1007-1016."""
    lockers = [_axis_locker('row', row) for row in range(1, INITIAL_ROWS + 1)]
    lockers += [_axis_locker('column', col) for col in range(1, INITIAL_COLUMNS + 1)]
    return lockers


def initialize_grid(repo, principal) -> List[str]:
    """
    Seed the default grid without touching existing lockers.

    Nothing is written unless a signed-in principal is given. Each locker is
    created only if absent so occupancy survives restarts. Returns the ids that
    were created.
    """
    if not principal:
        _logger.info('Skipping locker grid initialization: no signed-in principal')
        return []

    created = []
    for locker in seed_lockers():
        if repo.create(config.LOCKERS, locker.id, _seed_fields(locker)):
            created.append(locker.id)
    if created:
        _logger.info(f"Seeded {len(created)} lockers: {', '.join(created)}")
    return created


def _grow(repo, axis: str) -> Tuple[Locker, bool]:
    row_axis, column_axis = partition(load_lockers(repo))
    strip = row_axis if axis == 'row' else column_axis
    next_index = max((l.axis_index for l in strip), default=0) + 1
    locker = _axis_locker(axis, next_index)

    created = repo.create(config.LOCKERS, locker.id, _seed_fields(locker))
    if created:
        _logger.info(f"Added {axis} {next_index} as locker {locker.number}")
        return locker, True

    existing = get_locker(repo, locker.id)
    if existing.axis != axis:
        _logger.warning(
            f"Cannot add {axis} {next_index}: locker number {locker.number} "
            f"already belongs to the {existing.axis} axis"
        )
    return existing, False


def grow_row(repo) -> Tuple[Locker, bool]:
    """Append row ``max(row) + 1`` as locker ``1000 + row``. Returns (locker, created)."""
    return _grow(repo, 'row')


def grow_column(repo) -> Tuple[Locker, bool]:
    """Append column ``max(column) + 1`` as locker ``1006 + column``. Returns (locker, created)."""
    return _grow(repo, 'column')


def _shrink(repo, axis: str) -> Locker:
    row_axis, column_axis = partition(load_lockers(repo))
    strip = row_axis if axis == 'row' else column_axis
    if len(strip) <= 1:
        raise LastElementError(f'Cannot remove the last remaining {axis}')

    terminal = strip[-1]
    if terminal.is_occupied:
        raise OccupiedAxisElementError(
            'Cannot remove an occupied locker. Please remove the student first.'
        )

    repo.delete(config.LOCKERS, terminal.id)
    _logger.info(f"Removed {axis} {terminal.axis_index} (locker {terminal.number})")
    return terminal


def shrink_row(repo) -> Locker:
    return _shrink(repo, 'row')


def shrink_column(repo) -> Locker:
    return _shrink(repo, 'column')


def compute_grid_view(slots: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Pure recomputation of the locker grid view from the latest snapshots of
    the ``lockers`` and ``assignments`` collections.
    """
    lockers = lockers_from_docs(slots.get(config.LOCKERS) or [])
    assignments = [Assignment.from_dict(d, d.get('id')) for d in slots.get(config.ASSIGNMENTS) or []]
    by_locker = {a.locker_id: a for a in assignments}
    layout = build_layout(lockers)
    row_axis, column_axis = layout.row_axis, layout.column_axis

    locker_payload = []
    for locker in lockers:
        item = locker.to_dict()
        item['status'] = locker.status
        assignment = by_locker.get(locker.id)
        item['assignmentId'] = assignment.id if assignment else None
        item['hasSignature'] = assignment.has_signature if assignment else False
        locker_payload.append(item)

    return {
        'lockers': locker_payload,
        'layout': layout.to_dict(),
        'counts': {
            'rows': len(row_axis),
            'columns': len(column_axis),
            'total': len(lockers),
            'occupied': sum(1 for l in lockers if l.is_occupied),
            'broken': sum(1 for l in lockers if l.is_broken),
        },
        'canShrinkRow': len(row_axis) > 1,
        'canShrinkColumn': len(column_axis) > 1,
        'violations': find_axis_violations(lockers),
    }
