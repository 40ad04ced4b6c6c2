import unittest
from unittest import mock

from flask import Flask
from google.api_core import exceptions as gapi_exceptions

from fakes import InMemoryRepository

from locker_admin.errors import NotFoundError, PermissionDeniedError, RepositoryError
from locker_admin.repository import FirestoreRepository, get_repository, translate_errors


class TranslateErrorsTestCase(unittest.TestCase):
    def test_google_errors_become_locker_admin_errors(self):
        cases = [
            (gapi_exceptions.PermissionDenied('missing rules'), PermissionDeniedError, 403),
            (gapi_exceptions.NotFound('no doc'), NotFoundError, 404),
            (gapi_exceptions.ServiceUnavailable('offline'), RepositoryError, 503),
        ]
        for raised, expected, status in cases:
            @translate_errors
            def call():
                raise raised

            with self.assertRaises(expected) as ctx:
                call()
            self.assertEqual(ctx.exception.status_code, status)
            self.assertIs(ctx.exception.__cause__, raised)

    def test_exhausted_retries_become_repository_error(self):
        raised = gapi_exceptions.RetryError('Deadline of 60.0s exceeded', cause=None)

        @translate_errors
        def call():
            raise raised

        with self.assertRaises(RepositoryError) as ctx:
            call()
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.code, 'RETRY_EXHAUSTED')
        self.assertIs(ctx.exception.__cause__, raised)

    def test_domain_errors_pass_through(self):
        @translate_errors
        def call():
            raise NotFoundError('Locker locker_1 not found', code='LOCKER_NOT_FOUND')

        with self.assertRaises(NotFoundError) as ctx:
            call()
        self.assertEqual(ctx.exception.code, 'LOCKER_NOT_FOUND')


class FirestoreRepositoryTestCase(unittest.TestCase):
    def setUp(self):
        self.client = mock.MagicMock()
        self.repo = FirestoreRepository(self.client)
        self.doc_ref = self.client.collection.return_value.document.return_value

    def test_get_injects_document_id(self):
        snap = self.doc_ref.get.return_value
        snap.exists = True
        snap.id = 'locker_1001'
        snap.to_dict.return_value = {'number': '1001', 'row': 1}

        self.assertEqual(self.repo.get('lockers', 'locker_1001'),
                         {'id': 'locker_1001', 'number': '1001', 'row': 1})
        self.client.collection.assert_called_with('lockers')

    def test_get_missing_document(self):
        self.doc_ref.get.return_value.exists = False
        self.assertIsNone(self.repo.get('lockers', 'locker_9'))

    def test_create_if_absent(self):
        self.assertTrue(self.repo.create('lockers', 'locker_1001', {'number': '1001'}))
        self.doc_ref.create.side_effect = gapi_exceptions.AlreadyExists('exists')
        self.assertFalse(self.repo.create('lockers', 'locker_1001', {'number': '1001'}))

    def test_delete_many_commits_in_batches(self):
        ids = [f'r{i}' for i in range(1201)]
        self.assertEqual(self.repo.delete_many('responses', ids), 1201)
        self.assertEqual(self.client.batch.return_value.commit.call_count, 3)

    def test_query_chains_equality_filters(self):
        collection = self.client.collection.return_value
        query = collection.where.return_value.where.return_value
        query.stream.return_value = []
        self.assertEqual(self.repo.query('signatures', {'studentId': 's1', 'lockerId': 'locker_1'}), [])
        collection.where.assert_called_once_with('studentId', '==', 's1')

    def test_permission_denied_on_update(self):
        self.doc_ref.update.side_effect = gapi_exceptions.PermissionDenied('denied')
        with self.assertRaises(PermissionDeniedError):
            self.repo.update('lockers', 'locker_1001', {'isBroken': True})

    def test_retry_timeout_on_query(self):
        collection = self.client.collection.return_value
        collection.where.return_value.where.return_value.stream.side_effect = \
            gapi_exceptions.RetryError('Timeout of 600.0s exceeded', cause=None)
        with self.assertRaises(RepositoryError):
            self.repo.query('signatures', {'studentId': 's1', 'lockerId': 'locker_1'})


class GetRepositoryTestCase(unittest.TestCase):
    def test_configured_repository_wins(self):
        app = Flask(__name__)
        repo = InMemoryRepository()
        app.config['LOCKER_REPOSITORY'] = repo
        with app.app_context():
            self.assertIs(get_repository(), repo)


if __name__ == '__main__':
    unittest.main()
