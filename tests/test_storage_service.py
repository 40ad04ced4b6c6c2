import base64
import unittest
from unittest import mock

from locker_admin.services import storage_service


class StorageServiceTestCase(unittest.TestCase):
    @mock.patch('locker_admin.services.storage_service.get_storage_bucket',
                side_effect=ValueError('The default Firebase app does not exist'))
    def test_upload_falls_back_to_data_url(self, _bucket):
        is_url, location = storage_service.upload_signature_to_storage(b'\x89PNG-bytes')
        self.assertFalse(is_url)
        self.assertEqual(location, 'data:image/png;base64,' + base64.b64encode(b'\x89PNG-bytes').decode())

    @mock.patch('locker_admin.services.storage_service.get_storage_bucket')
    def test_upload_to_bucket(self, get_bucket):
        blob = get_bucket.return_value.blob.return_value
        blob.public_url = 'https://storage.googleapis.com/school-lockers/signatures/a.png'

        is_url, location = storage_service.upload_signature_to_storage(b'png')
        self.assertTrue(is_url)
        self.assertEqual(location, blob.public_url)
        path = get_bucket.return_value.blob.call_args[0][0]
        self.assertTrue(path.startswith('signatures/') and path.endswith('.png'))
        blob.upload_from_string.assert_called_once_with(b'png', content_type='image/png')

    @mock.patch('locker_admin.services.storage_service.get_storage_bucket')
    def test_delete_storage_url(self, get_bucket):
        ok = storage_service.delete_image_from_storage(
            'https://storage.googleapis.com/school-lockers/signatures/2024%2006/a.png')
        self.assertTrue(ok)
        get_bucket.return_value.blob.assert_called_once_with('signatures/2024 06/a.png')

    @mock.patch('locker_admin.services.storage_service.get_storage_bucket')
    def test_delete_skips_inline_and_foreign_urls(self, get_bucket):
        self.assertTrue(storage_service.delete_image_from_storage('data:image/png;base64,AA=='))
        self.assertFalse(storage_service.delete_image_from_storage('https://example.test/a.png'))
        get_bucket.assert_not_called()


if __name__ == '__main__':
    unittest.main()
