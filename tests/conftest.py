import pytest

from labinventory import create_app, db
from labinventory.errors import BlobStoreError
from labinventory.storage import LocalBlobStore


class FlakyBlobStore(LocalBlobStore):
    """Local store that fails uploads/deletes for chosen filenames."""

    def __init__(self, directory, base_url, fail_upload=(), fail_delete=()):
        super().__init__(directory, base_url)
        self.fail_upload = set(fail_upload)
        self.fail_delete = set(fail_delete)

    def upload(self, filename, data):
        if "*" in self.fail_upload or filename in self.fail_upload:
            raise BlobStoreError(f"upload of {filename} refused")
        return super().upload(filename, data)

    def delete(self, filename):
        if "*" in self.fail_delete or filename in self.fail_delete:
            raise BlobStoreError(f"delete of {filename} refused")
        return super().delete(filename)


@pytest.fixture()
def app(tmp_path):
    app = create_app(testing=True, config={"QR_STORAGE_DIR": str(tmp_path / "qrcodes")})
    with app.app_context():
        db.create_all()
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def service(app):
    with app.app_context():
        yield app.extensions["provisioning"]


@pytest.fixture()
def flaky_store(app, service):
    store = FlakyBlobStore(app.config["QR_STORAGE_DIR"], app.config["API_URL"])
    service.blob_store = store
    return store
