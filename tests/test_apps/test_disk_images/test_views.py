"""Tests for the disk image HTTP API."""

import pytest
from botocore.exceptions import ClientError
from django.core.files.uploadedfile import SimpleUploadedFile

from server.apps.disk_images.infrastructure.storage import ImageStorage

MIB = 1024 * 1024

_JSON = 'application/json'


def _create_session(client, file_name: str) -> dict:
    response = client.post(
        '/api/multipart/create',
        {'fileName': file_name},
        content_type=_JSON,
    )
    assert response.status_code == 200
    return response.json()


def _put_part(client, session: dict, part_number: int, data: bytes):
    return client.put(
        '/api/multipart/upload-part?uploadId={0}&partNumber={1}&key={2}'.format(
            session['uploadId'],
            part_number,
            session['key'],
        ),
        data=data,
        content_type='application/octet-stream',
    )


class TestCors:
    """CORS handling on every route."""

    def test_options_preflight(self, client):
        """Test OPTIONS answers 204 on any path."""
        response = client.options('/api/files')

        assert response.status_code == 204
        assert response['Access-Control-Allow-Origin'] == '*'
        assert 'PUT' in response['Access-Control-Allow-Methods']
        assert response['Access-Control-Allow-Headers'] == 'Content-Type'

    def test_options_unknown_path(self, client):
        """Test OPTIONS answers 204 even for unrouted paths."""
        response = client.options('/anything/else')

        assert response.status_code == 204

    def test_headers_on_success_and_error(self, client, mock_s3):
        """Test CORS headers are added to normal and error responses."""
        ok = client.get('/api/files')
        missing = client.delete('/api/delete/missing.iso')

        assert ok['Access-Control-Allow-Origin'] == '*'
        assert missing.status_code == 404
        assert missing['Access-Control-Allow-Origin'] == '*'


class TestListFiles:
    """GET /api/files."""

    def test_list_files(self, client, mock_s3, bucket, stored_image):
        """Test managed images are listed with camelCase fields."""
        bucket.put_object(Key='readme.txt', Body=b'not an image')

        response = client.get('/api/files')

        assert response.status_code == 200
        files = response.json()
        assert [entry['name'] for entry in files] == [stored_image]
        entry = files[0]
        assert entry['size'] == len(b'alpine image bytes')
        assert entry['etag']
        assert 'lastModified' in entry

    def test_list_files_wrong_method(self, client):
        """Test other methods are not allowed."""
        assert client.post('/api/files').status_code == 405


class TestUpload:
    """POST /api/upload."""

    def test_simple_upload(self, client, mock_s3, bucket):
        """Test a small form upload is stored and reported."""
        upload = SimpleUploadedFile('debian-12.iso', b'disk image bytes')

        response = client.post('/api/upload', {'file': upload})

        assert response.status_code == 200
        assert response.json() == {
            'message': 'Upload complete',
            'fileName': 'debian-12.iso',
            'fileSize': len(b'disk image bytes'),
        }
        stored = bucket.Object('debian-12.iso').get()['Body'].read()
        assert stored == b'disk image bytes'

    def test_large_upload_goes_multipart(
        self,
        client,
        mock_s3,
        bucket,
        image_bytes,
    ):
        """Test a form upload above the threshold is stored in parts."""
        content = image_bytes(11 * MIB)
        upload = SimpleUploadedFile('rocky-9.iso', content)

        response = client.post('/api/upload', {'file': upload})

        assert response.status_code == 200
        assert response.json()['fileSize'] == len(content)
        assert bucket.Object('rocky-9.iso').get()['Body'].read() == content

    def test_upload_without_file(self, client):
        """Test a form without a file field is rejected."""
        response = client.post('/api/upload', {})

        assert response.status_code == 400
        assert response.content == b'No file selected'

    def test_upload_wrong_suffix(self, client):
        """Test non-image files are rejected before reaching the store."""
        upload = SimpleUploadedFile('notes.txt', b'notes')

        response = client.post('/api/upload', {'file': upload})

        assert response.status_code == 400
        assert b'.iso' in response.content

    def test_upload_too_large(self, client, settings):
        """Test uploads above the maximum size are rejected."""
        settings.DISK_IMAGES_MAX_SIZE = 4
        upload = SimpleUploadedFile('big.iso', b'12345')

        response = client.post('/api/upload', {'file': upload})

        assert response.status_code == 400
        assert b'File too large' in response.content

    def test_upload_store_failure(self, client, mock_s3, monkeypatch):
        """Test store failures are reported as 500."""
        def broken(self, name, content, max_length=None):
            raise ClientError(
                {'Error': {'Code': 'InternalError', 'Message': 'boom'}},
                'PutObject',
            )

        monkeypatch.setattr(ImageStorage, 'save', broken)
        upload = SimpleUploadedFile('debian-12.iso', b'disk image bytes')

        response = client.post('/api/upload', {'file': upload})

        assert response.status_code == 500
        assert b'Upload failed' in response.content


class TestMultipart:
    """Client-driven multipart upload endpoints."""

    def test_full_session(self, client, mock_s3, bucket, image_bytes):
        """Test create, parts out of order and complete."""
        first = image_bytes(5 * MIB)
        second = b'last part'

        session = _create_session(client, 'fedora-40.iso')
        assert session['key'] == 'fedora-40.iso'
        assert session['fileName'] == 'fedora-40.iso'
        assert session['uploadId']

        second_part = _put_part(client, session, 2, second)
        first_part = _put_part(client, session, 1, first)
        assert first_part.status_code == 200
        assert first_part.json()['partNumber'] == 1

        response = client.post(
            '/api/multipart/complete',
            {
                'key': session['key'],
                'uploadId': session['uploadId'],
                'parts': [second_part.json(), first_part.json()],
            },
            content_type=_JSON,
        )

        assert response.status_code == 200
        body = response.json()
        assert body['message'] == 'Upload complete'
        assert body['fileName'] == 'fedora-40.iso'
        assert body['etag']
        stored = bucket.Object('fedora-40.iso').get()['Body'].read()
        assert stored == first + second

    def test_create_wrong_suffix(self, client):
        """Test sessions are only opened for images."""
        response = client.post(
            '/api/multipart/create',
            {'fileName': 'notes.txt'},
            content_type=_JSON,
        )

        assert response.status_code == 400

    def test_create_invalid_json(self, client):
        """Test malformed bodies are rejected."""
        response = client.post(
            '/api/multipart/create',
            b'{not json',
            content_type=_JSON,
        )

        assert response.status_code == 400
        assert b'Invalid JSON body' in response.content

    @pytest.mark.parametrize(
        'query',
        [
            'partNumber=1&key=a.iso',
            'uploadId=abc&key=a.iso',
            'uploadId=abc&partNumber=0&key=a.iso',
            'uploadId=abc&partNumber=10001&key=a.iso',
            'uploadId=abc&partNumber=one&key=a.iso',
        ],
    )
    def test_upload_part_bad_query(self, client, query):
        """Test missing or invalid query parameters are rejected."""
        response = client.put(
            f'/api/multipart/upload-part?{query}',
            data=b'data',
            content_type='application/octet-stream',
        )

        assert response.status_code == 400

    def test_upload_part_unknown_session(self, client, mock_s3, monkeypatch):
        """Test parts for an unknown session answer 404."""
        def missing(self, name, upload_id, part_number, data):
            raise ClientError(
                {'Error': {'Code': 'NoSuchUpload', 'Message': 'gone'}},
                'UploadPart',
            )

        monkeypatch.setattr(ImageStorage, 'upload_part', missing)
        session = {'key': 'a.iso', 'uploadId': 'bogus'}

        response = _put_part(client, session, 1, b'data')

        assert response.status_code == 404

    def test_complete_with_gap(self, client, mock_s3, image_bytes):
        """Test a part list with a gap is rejected."""
        session = _create_session(client, 'gap.iso')
        parts = [
            _put_part(client, session, part_number, image_bytes(5 * MIB)).json()
            for part_number in (1, 2, 4)
        ]

        response = client.post(
            '/api/multipart/complete',
            {
                'key': session['key'],
                'uploadId': session['uploadId'],
                'parts': parts,
            },
            content_type=_JSON,
        )

        assert response.status_code == 400
        assert b'Missing parts: [3]' in response.content

    @pytest.mark.parametrize('part_number', [10001, 10**12])
    def test_complete_part_number_out_of_range(self, client, part_number):
        """Test part numbers beyond the store limit are rejected."""
        response = client.post(
            '/api/multipart/complete',
            {
                'key': 'a.iso',
                'uploadId': 'abc',
                'parts': [
                    {'partNumber': 1, 'etag': 'a'},
                    {'partNumber': part_number, 'etag': 'b'},
                ],
            },
            content_type=_JSON,
        )

        assert response.status_code == 400
        assert b'Invalid request' in response.content

    def test_complete_without_parts(self, client):
        """Test an empty part list is rejected."""
        response = client.post(
            '/api/multipart/complete',
            {'key': 'a.iso', 'uploadId': 'abc', 'parts': []},
            content_type=_JSON,
        )

        assert response.status_code == 400

    def test_abort(self, client, mock_s3, open_uploads):
        """Test aborting releases the session."""
        session = _create_session(client, 'aborted.iso')
        _put_part(client, session, 1, b'partial')

        response = client.post(
            '/api/multipart/abort',
            {'key': session['key'], 'uploadId': session['uploadId']},
            content_type=_JSON,
        )

        assert response.status_code == 200
        assert response.json() == {
            'message': 'Upload aborted',
            'fileName': 'aborted.iso',
        }
        assert open_uploads() == []


class TestDownload:
    """GET /api/download/<name>."""

    def test_download(self, client, mock_s3, stored_image):
        """Test the image is streamed as an attachment."""
        response = client.get(f'/api/download/{stored_image}')

        assert response.status_code == 200
        assert response['Content-Type'] == 'application/octet-stream'
        assert response['Content-Length'] == str(len(b'alpine image bytes'))
        assert response['Content-Disposition'] == (
            'attachment; filename="alpine-3.20.iso"'
        )
        assert b''.join(response.streaming_content) == b'alpine image bytes'

    def test_download_nested_name(self, client, mock_s3, bucket):
        """Test names with slashes download under their base name."""
        bucket.put_object(Key='mirrors/debian-12.iso', Body=b'debian')

        response = client.get('/api/download/mirrors/debian-12.iso')

        assert response.status_code == 200
        assert 'filename="debian-12.iso"' in response['Content-Disposition']

    def test_download_missing(self, client, mock_s3):
        """Test missing images answer 404."""
        response = client.get('/api/download/missing.iso')

        assert response.status_code == 404
        assert response.content == b'File not found: missing.iso'


class TestDelete:
    """DELETE /api/delete/<name>."""

    def test_delete(self, client, mock_s3, stored_image):
        """Test deleted images leave the listing."""
        response = client.delete(f'/api/delete/{stored_image}')

        assert response.status_code == 200
        assert response.content == f'Deleted {stored_image}'.encode()
        assert client.get('/api/files').json() == []

    def test_delete_missing(self, client, mock_s3):
        """Test deleting a missing image answers 404."""
        response = client.delete('/api/delete/missing.iso')

        assert response.status_code == 404

    def test_delete_wrong_method(self, client):
        """Test GET is not allowed on the delete route."""
        assert client.get('/api/delete/a.iso').status_code == 405
