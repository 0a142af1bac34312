import json
import os
import random

import pytest

from labinventory.errors import BlobStoreError, DependencyError, NotFoundError, ValidationError
from labinventory.models import System


def codes(systems):
    return [s.id_code for s in systems]


def test_sequential_allocation(service):
    created = service.create_systems("MCA", 3, "4GB RAM")
    assert codes(created) == ["MCA-001", "MCA-002", "MCA-003"]


def test_continuation(service):
    service.create_systems("MCA", 5, "4GB RAM")
    assert codes(service.create_systems("MCA", 2, "4GB RAM")) == ["MCA-006", "MCA-007"]


def test_labs_number_independently(service):
    service.create_systems("MCA", 2, "d")
    assert codes(service.create_systems("BCA", 1, "d")) == ["BCA-001"]


def test_codes_unique_across_random_batches(service):
    rng = random.Random(7)
    for _ in range(15):
        service.create_systems(rng.choice(["MCA", "BCA", "UIT"]), rng.randint(1, 6), "d")
    all_codes = [s.id_code for s in System.query.all()]
    assert len(all_codes) == len(set(all_codes))


def test_created_systems_carry_qr(app, service):
    [system] = service.create_systems("PIT", 1, "8GB RAM")
    payload = json.loads(system.qr_payload)
    assert payload == {
        "idCode": "PIT-001",
        "labName": "PIT",
        "description": "8GB RAM",
        "systemUrl": f"http://testserver/system/{system.id}",
    }
    assert system.system_url == payload["systemUrl"]
    assert system.qr_image_url == "http://testserver/qrcodes/PIT-001.png"
    assert os.path.exists(os.path.join(app.config["QR_STORAGE_DIR"], "PIT-001.png"))


def test_empty_description_uses_default(app, service):
    [system] = service.create_systems("UCS", 1, "  ")
    assert system.description == app.config["DEFAULT_DESCRIPTION"]


@pytest.mark.parametrize("lab,count", [("XYZ", 1), ("MCA", 0), ("MCA", 101), ("MCA", "3"), ("MCA", True)])
def test_create_validation_happens_before_writes(service, lab, count):
    with pytest.raises(ValidationError):
        service.create_systems(lab, count, "d")
    assert System.query.count() == 0


def test_partial_qr_failure_keeps_batch(service, flaky_store):
    flaky_store.fail_upload = {"MCA-002.png"}
    created = service.create_systems("MCA", 3, "d")
    assert codes(created) == ["MCA-001", "MCA-002", "MCA-003"]
    by_code = {s.id_code: s for s in created}
    failed = by_code["MCA-002"]
    assert failed.qr_image_url is None and failed.qr_payload is None and failed.system_url is None
    assert by_code["MCA-001"].qr_image_url and by_code["MCA-003"].qr_image_url
    assert System.query.count() == 3


def test_allocation_retries_on_code_collision(service, monkeypatch):
    service.create_systems("MCA", 1, "d")
    real = service.next_id_for_lab
    calls = []

    def stale(lab):
        calls.append(lab)
        return "MCA-001" if len(calls) == 1 else real(lab)

    monkeypatch.setattr(service, "next_id_for_lab", stale)
    assert codes(service.create_systems("MCA", 2, "d")) == ["MCA-002", "MCA-003"]
    assert len(calls) == 2


def test_allocation_gives_up_after_retries(service, monkeypatch):
    service.create_systems("MCA", 1, "d")
    monkeypatch.setattr(service, "next_id_for_lab", lambda lab: "MCA-001")
    with pytest.raises(DependencyError):
        service.create_systems("MCA", 1, "d")
    assert System.query.count() == 1


def test_update_preserves_id_code_and_regenerates_qr(app, service):
    [system] = service.create_systems("MCA", 1, "4GB RAM")
    path = os.path.join(app.config["QR_STORAGE_DIR"], "MCA-001.png")
    with open(path, "rb") as fh:
        before = fh.read()

    updated = service.update_system(system.id, lab_name="BCA", description="16GB RAM")
    assert updated.id_code == "MCA-001"
    assert updated.lab_name == "BCA"
    assert json.loads(updated.qr_payload)["labName"] == "BCA"
    assert json.loads(updated.qr_payload)["description"] == "16GB RAM"
    assert updated.qr_image_url.endswith("/MCA-001.png")
    with open(path, "rb") as fh:
        assert fh.read() != before


def test_moved_system_keeps_its_number_reserved(service):
    service.create_systems("MCA", 3, "d")
    moved = System.query.filter_by(id_code="MCA-003").one()
    service.update_system(moved.id, lab_name="BCA")
    assert codes(service.create_systems("MCA", 1, "d")) == ["MCA-004"]
    assert codes(service.create_systems("BCA", 1, "d")) == ["BCA-001"]


def test_update_with_failed_qr_returns_patched_record(service, flaky_store):
    [system] = service.create_systems("MCA", 1, "old")
    stale_payload = system.qr_payload
    flaky_store.fail_upload = {"*"}
    updated = service.update_system(system.id, description="new")
    assert updated.description == "new"
    assert updated.qr_payload == stale_payload


def test_update_without_fields_repairs_qr(service, flaky_store):
    flaky_store.fail_upload = {"*"}
    [system] = service.create_systems("MCA", 1, "d")
    assert system.qr_image_url is None
    flaky_store.fail_upload = set()
    assert service.update_system(system.id).qr_image_url is not None


def test_update_errors(service):
    [system] = service.create_systems("MCA", 1, "d")
    with pytest.raises(NotFoundError):
        service.update_system("missing", description="x")
    with pytest.raises(ValidationError):
        service.update_system(system.id, lab_name="NOPE")
    with pytest.raises(ValidationError):
        service.update_system(system.id, description="")


def test_delete_survives_blob_failure(service, flaky_store):
    [system] = service.create_systems("MCA", 1, "d")
    flaky_store.fail_delete = {"*"}
    assert service.delete_system(system.id) is True
    assert service.repo.get_by_id(system.id) is None


def test_delete_removes_blob(app, service):
    [system] = service.create_systems("MCA", 1, "d")
    service.delete_system(system.id)
    assert not os.path.exists(os.path.join(app.config["QR_STORAGE_DIR"], "MCA-001.png"))
    with pytest.raises(NotFoundError):
        service.delete_system(system.id)


def test_bulk_delete_counts_existing_only(service):
    a, b, c = service.create_systems("MCA", 3, "d")
    assert service.delete_systems([a.id, b.id, "nonexistent"]) == 2
    assert codes(System.query.all()) == ["MCA-003"]


@pytest.mark.parametrize("ids", [[], None, "abc", [1, 2], [""]])
def test_bulk_delete_rejects_bad_ids(service, ids):
    with pytest.raises(ValidationError):
        service.delete_systems(ids)


def test_repair_missing_qr(service, flaky_store):
    flaky_store.fail_upload = {"MCA-001.png", "MCA-003.png"}
    service.create_systems("MCA", 3, "d")
    flaky_store.fail_upload = set()
    assert service.repair_missing_qr() == 2
    assert service.repo.missing_qr() == []
    assert service.repair_missing_qr() == 0


def test_stats(service):
    service.create_systems("MCA", 2, "4GB RAM")
    service.create_systems("UIT", 1, "4GB RAM")
    service.create_systems("PDS", 1, "8GB RAM")
    stats = service.stats()
    assert stats["totalSystems"] == 4
    assert stats["departmentCounts"]["MCA"] == 2
    assert stats["departmentCounts"]["BCA"] == 0
    assert set(stats["departmentCounts"]) == set(service.lab_names)
    top, second = stats["configStats"]
    assert top == {"configuration": "4GB RAM", "count": 3, "departments": ["MCA", "UIT"]}
    assert second["count"] == 1
    assert sum(g["count"] for g in stats["configStats"]) == stats["totalSystems"]


def test_export_zip_skips_missing_images(service, flaky_store):
    import io
    import zipfile

    flaky_store.fail_upload = {"MCA-002.png"}
    service.create_systems("MCA", 3, "d")
    with zipfile.ZipFile(io.BytesIO(service.export_qr_zip("MCA"))) as zf:
        names = sorted(n for n in zf.namelist() if not n.endswith("/"))
    assert names == ["MCA/MCA-001.png", "MCA/MCA-003.png"]
    with pytest.raises(NotFoundError):
        service.export_qr_zip("BCA")


def test_regenerate_qr_propagates_errors(service, flaky_store):
    [system] = service.create_systems("MCA", 1, "d")
    flaky_store.fail_upload = {"*"}
    with pytest.raises(BlobStoreError):
        service.regenerate_qr(system.id)
    flaky_store.fail_upload = set()
    assert service.regenerate_qr(system.id).qr_image_url.endswith("MCA-001.png")
    with pytest.raises(NotFoundError):
        service.regenerate_qr("missing")
