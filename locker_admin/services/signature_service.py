"""
Signature capture engine.

A ``SignatureCanvas`` mirrors the browser signature pad on a Pillow image:
- the backing surface is ``logical size * device pixel ratio`` pixels
- pointer coordinates arrive in client space and are mapped to backing
  pixels with ``map_to_backing_space``
- resizing keeps existing ink by round-tripping it through an offscreen
  buffer at the new logical size
- strokes are drawn segment by segment between successive move events

Browsers either post a finished PNG data URL (``decode_data_url``) or the
raw pointer log, which is replayed here (``SignatureCanvas.replay``).
"""
import base64
import binascii
import io
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from PIL import Image, ImageDraw, UnidentifiedImageError

from .. import config
from ..errors import EmptyCanvasError, ValidationError

BACKGROUND = (255, 255, 255)
STROKE_COLOR = (0, 0, 0)
LINE_WIDTH = 2
MIN_LOGICAL_WIDTH = 100
MIN_LOGICAL_HEIGHT = 80
DEFAULT_ASPECT = 0.5
PNG_DATA_URL_PREFIX = 'data:image/png;base64,'

# Max luminance still counted as ink when checking uploaded images
INK_THRESHOLD = 250

IDLE = 'idle'
DRAWING = 'drawing'


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class SurfaceRect:
    """Displayed (CSS pixel) position and size of the drawing surface."""
    left: float
    top: float
    width: float
    height: float


def map_to_backing_space(client_point: Point, surface_rect: SurfaceRect,
                         backing_size: Tuple[int, int]) -> Point:
    """Map a client-space point onto the backing surface's pixel grid."""
    if surface_rect.width <= 0 or surface_rect.height <= 0:
        raise ValueError('surface_rect must have a positive size')
    scale_x = backing_size[0] / surface_rect.width
    scale_y = backing_size[1] / surface_rect.height
    return Point(
        (client_point.x - surface_rect.left) * scale_x,
        (client_point.y - surface_rect.top) * scale_y,
    )


_EVENT_KINDS = {
    'mousedown': ('down', False),
    'mousemove': ('move', False),
    'mouseup': ('up', False),
    'mouseleave': ('leave', False),
    'touchstart': ('down', True),
    'touchmove': ('move', True),
    'touchend': ('up', True),
    'touchcancel': ('leave', True),
    'pointerdown': ('down', False),
    'pointermove': ('move', False),
    'pointerup': ('up', False),
    'pointerleave': ('leave', False),
}


@dataclass(frozen=True)
class PointerEvent:
    kind: str  # down / move / up / leave
    client_x: float = 0.0
    client_y: float = 0.0
    is_touch: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PointerEvent':
        """
        Parse a DOM-like event record, e.g.
        ``{"type": "touchmove", "touches": [{"clientX": 10, "clientY": 20}]}``.
        """
        event_type = str(data.get('type', '')).lower()
        if event_type not in _EVENT_KINDS:
            raise ValidationError(f'Unsupported pointer event type: {event_type!r}', code='INVALID_STROKE')
        kind, is_touch = _EVENT_KINDS[event_type]
        if event_type.startswith('pointer') and data.get('pointerType') == 'touch':
            is_touch = True

        source = data
        if is_touch:
            touches = data.get('touches') or data.get('changedTouches') or []
            if touches:
                source = touches[0]
        try:
            client_x = float(source.get('clientX', 0) or 0)
            client_y = float(source.get('clientY', 0) or 0)
        except (TypeError, ValueError):
            raise ValidationError('Pointer coordinates must be numbers', code='INVALID_STROKE')
        return cls(kind=kind, client_x=client_x, client_y=client_y, is_touch=is_touch)


class SignatureCanvas:
    """Freehand drawing surface with a DPR-scaled backing image."""

    def __init__(self, width: int = None, height: int = None, device_pixel_ratio: float = 1.0,
                 container_width: float = None, origin: Tuple[float, float] = (0.0, 0.0),
                 disabled: bool = False):
        width = config.SIGNATURE_DEFAULT_WIDTH if width is None else width
        height = config.SIGNATURE_DEFAULT_HEIGHT if height is None else height
        self.aspect = height / width if width > 0 and height > 0 else DEFAULT_ASPECT
        self.device_pixel_ratio = device_pixel_ratio or 1.0
        self.left, self.top = origin
        self.disabled = disabled
        self.state = IDLE
        self.has_content = False
        self._last_point: Optional[Point] = None
        self.image: Optional[Image.Image] = None
        self.logical_width = 0
        self.logical_height = 0
        self.resize(width if container_width is None else container_width)

    @property
    def backing_size(self) -> Tuple[int, int]:
        return self.image.size

    @property
    def surface_rect(self) -> SurfaceRect:
        return SurfaceRect(self.left, self.top, self.logical_width, self.logical_height)

    def _blank(self, size: Tuple[int, int]) -> Image.Image:
        return Image.new('RGB', size, BACKGROUND)

    def resize(self, container_width: float):
        """Fit the surface to a new container width, keeping aspect ratio and ink."""
        logical_width = max(MIN_LOGICAL_WIDTH, math.floor(container_width))
        logical_height = max(MIN_LOGICAL_HEIGHT, math.floor(logical_width * self.aspect))

        buffer = None
        if self.image is not None:
            buffer = self._blank((logical_width, logical_height))
            buffer.paste(self.image.resize((logical_width, logical_height), Image.BILINEAR))

        backing = (
            round(logical_width * self.device_pixel_ratio),
            round(logical_height * self.device_pixel_ratio),
        )
        self.image = self._blank(backing)
        if buffer is not None:
            self.image.paste(buffer.resize(backing, Image.BILINEAR))
        self.logical_width = logical_width
        self.logical_height = logical_height

    def to_backing(self, client_x: float, client_y: float) -> Point:
        return map_to_backing_space(Point(client_x, client_y), self.surface_rect, self.backing_size)

    def _draw_segment(self, start: Point, end: Point):
        width = max(1, round(LINE_WIDTH * self.device_pixel_ratio))
        draw = ImageDraw.Draw(self.image)
        draw.line([(start.x, start.y), (end.x, end.y)], fill=STROKE_COLOR, width=width)
        # Round caps and joins
        r = width / 2.0
        for p in (start, end):
            draw.ellipse([p.x - r, p.y - r, p.x + r, p.y + r], fill=STROKE_COLOR)

    def pointer_down(self, client_x: float, client_y: float):
        if self.disabled:
            return
        self.state = DRAWING
        self._last_point = self.to_backing(client_x, client_y)

    def pointer_move(self, client_x: float, client_y: float) -> bool:
        """Draw from the last point to this one; True when a segment was drawn."""
        if self.disabled or self.state != DRAWING or self._last_point is None:
            return False
        current = self.to_backing(client_x, client_y)
        self._draw_segment(self._last_point, current)
        self._last_point = current
        self.has_content = True
        return True

    def pointer_up(self):
        self.state = IDLE
        self._last_point = None

    pointer_leave = pointer_up

    def dispatch(self, event: PointerEvent) -> bool:
        """
        Route one input event through the drawing state machine.

        Returns whether the platform default (scroll, zoom, text selection)
        must be suppressed. Touch listeners are registered non-passive, so every
        touch event on an enabled pad is suppressed; mouse defaults are only
        suppressed while a stroke is in progress.
        """
        if self.disabled:
            return False
        if event.kind == 'down':
            self.pointer_down(event.client_x, event.client_y)
            return True
        if event.kind == 'move':
            drawing = self.state == DRAWING
            self.pointer_move(event.client_x, event.client_y)
            return drawing or event.is_touch
        self.pointer_up()
        return event.is_touch

    def clear(self):
        self.image = self._blank(self.backing_size)
        self.has_content = False
        self.state = IDLE
        self._last_point = None

    def export_image(self) -> bytes:
        """PNG bytes of the backing surface at full resolution."""
        if not self.has_content:
            raise EmptyCanvasError('Please provide a signature before saving')
        out = io.BytesIO()
        self.image.save(out, format='PNG')
        return out.getvalue()

    def export_data_url(self) -> str:
        return PNG_DATA_URL_PREFIX + base64.b64encode(self.export_image()).decode('utf-8')

    @classmethod
    def replay(cls, events: Iterable[Dict[str, Any]], width: int = None, height: int = None,
               device_pixel_ratio: float = 1.0, container_width: float = None,
               origin: Tuple[float, float] = (0.0, 0.0)) -> 'SignatureCanvas':
        """
        Rebuild a canvas from a recorded event log. Besides pointer events the
        log may contain ``{"type": "resize", "width": <container width>}``.
        """
        canvas = cls(width=width, height=height, device_pixel_ratio=device_pixel_ratio,
                     container_width=container_width, origin=origin)
        for raw in events:
            if not isinstance(raw, dict):
                raise ValidationError('Each stroke event must be an object', code='INVALID_STROKE')
            if str(raw.get('type', '')).lower() == 'resize':
                try:
                    canvas.resize(float(raw.get('width')))
                except (TypeError, ValueError):
                    raise ValidationError('Resize events need a numeric width', code='INVALID_STROKE')
                continue
            canvas.dispatch(PointerEvent.from_dict(raw))
        return canvas


def has_ink(image: Image.Image, threshold: int = INK_THRESHOLD) -> bool:
    if image.mode in ('RGBA', 'LA') or 'transparency' in image.info:
        rgba = image.convert('RGBA')
        image = Image.alpha_composite(Image.new('RGBA', rgba.size, BACKGROUND + (255,)), rgba)
    low, _ = image.convert('L').getextrema()
    return low < threshold


def decode_data_url(data_url: str) -> bytes:
    """
    Validate a browser-exported ``data:image/png;base64,...`` signature and
    return the PNG bytes. Blank images are rejected like an empty canvas.
    """
    if not data_url or not isinstance(data_url, str) or not data_url.startswith('data:image'):
        raise ValidationError('Invalid signature image data', code='INVALID_SIGNATURE')
    try:
        header, b64 = data_url.split(',', 1)
        image_bytes = base64.b64decode(b64, validate=True)
    except (ValueError, binascii.Error):
        raise ValidationError('Invalid signature image data (malformed data URL)', code='INVALID_SIGNATURE')
    if 'image/png' not in header:
        raise ValidationError('Signatures must be PNG images', code='INVALID_SIGNATURE')
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            if not has_ink(img):
                raise EmptyCanvasError('Please provide a signature before saving')
    except (UnidentifiedImageError, OSError):
        raise ValidationError('Signature image could not be decoded', code='INVALID_SIGNATURE')
    return image_bytes
