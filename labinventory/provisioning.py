"""Provisioning workflow: create, update and delete systems together with
their QR artifacts, plus the exports and statistics built on top.

Creating systems is a two phase operation:

1. allocate ``count`` sequential id codes and insert all bare rows in one
   transaction, so the numbers are reserved durably;
2. for each row, independently, build the payload, render the QR, upload it
   as ``<idCode>.png`` and patch the row with the URL and payload.

Phase 2 is best effort.  A failure is logged and leaves that row with null QR
fields; the batch still succeeds.  :meth:`ProvisioningService.regenerate_qr`
re-runs phase 2 for a single row and is safe to repeat.

Deletes remove the blob before the row, so an interrupted delete leaves at
worst an orphaned image, never a row pointing at a missing one.
"""

import csv
import io
import zipfile
from datetime import datetime, timezone

import pandas as pd
from sqlalchemy.exc import IntegrityError

from . import allocator
from .errors import DependencyError, NotFoundError, ValidationError, field_error
from .models import fmt_ts
from .qr_utils import build_payload, qr_filename, render_qr, serialize_payload

CSV_COLUMNS = ["System ID", "Lab Name", "Configuration", "QR Image URL", "System URL", "Created At"]


class ProvisioningService:
    def __init__(self, repository, blob_store, *, base_url, lab_names, default_description,
                 logger, max_batch=100, allocation_retries=3,
                 fill_color="#000000", back_color="#FFFFFF"):
        self.repo = repository
        self.blob_store = blob_store
        self.base_url = base_url
        self.lab_names = list(lab_names)
        self.default_description = default_description
        self.logger = logger
        self.max_batch = max_batch
        self.allocation_retries = max(1, allocation_retries)
        self.fill_color = fill_color
        self.back_color = back_color

    @classmethod
    def from_app(cls, app, repository, blob_store):
        cfg = app.config
        return cls(
            repository,
            blob_store,
            base_url=cfg["API_URL"],
            lab_names=cfg["LAB_NAMES"],
            default_description=cfg["DEFAULT_DESCRIPTION"],
            logger=app.logger,
            max_batch=cfg.get("MAX_SYSTEMS_PER_REQUEST", 100),
            allocation_retries=cfg.get("ALLOCATION_RETRIES", 3),
            fill_color=cfg.get("QR_FILL_COLOR", "#000000"),
            back_color=cfg.get("QR_BACK_COLOR", "#FFFFFF"),
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def _check_lab(self, lab, errors):
        if not isinstance(lab, str) or lab not in self.lab_names:
            errors.append(field_error("labName", f"labName must be one of {', '.join(self.lab_names)}"))

    def _check_description(self, description, errors):
        if not isinstance(description, str) or not description.strip():
            errors.append(field_error("description", "description must be a non-empty string"))

    def _check_count(self, count, errors):
        if isinstance(count, bool) or not isinstance(count, int) or not 1 <= count <= self.max_batch:
            errors.append(field_error(
                "numberOfSystems", f"numberOfSystems must be an integer between 1 and {self.max_batch}"
            ))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def list_systems(self, lab=None, search=None):
        if lab is not None:
            errors = []
            self._check_lab(lab, errors)
            if errors:
                raise ValidationError(errors)
        return self.repo.get_all(lab=lab, search=(search or "").strip() or None)

    def get_system(self, system_id):
        system = self.repo.get_by_id(system_id)
        if system is None:
            raise NotFoundError("System not found")
        return system

    def next_id_for_lab(self, lab):
        return allocator.next_id_for_lab(self.repo, lab)

    # ------------------------------------------------------------------
    # QR enrichment
    # ------------------------------------------------------------------
    def _enrich(self, system):
        payload = build_payload(system, self.base_url)
        image = render_qr(payload, fill_color=self.fill_color, back_color=self.back_color)
        url = self.blob_store.upload(qr_filename(system.id_code), image)
        return self.repo.update(
            system.id,
            qr_image_url=url,
            qr_payload=serialize_payload(payload),
            system_url=payload["systemUrl"],
        )

    def regenerate_qr(self, system_id):
        """Render and upload the QR for one system again.  Errors propagate."""
        return self._enrich(self.get_system(system_id))

    def repair_missing_qr(self) -> int:
        repaired = 0
        for system in self.repo.missing_qr():
            id_code = system.id_code
            try:
                self._enrich(system)
                repaired += 1
            except Exception as e:
                self.logger.error("QR repair failed for %s: %s", id_code, e)
        return repaired

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------
    def create_systems(self, lab, count=1, description=None):
        errors = []
        self._check_lab(lab, errors)
        self._check_count(count, errors)
        if description is not None and not isinstance(description, str):
            errors.append(field_error("description", "description must be a string"))
        if errors:
            raise ValidationError(errors)
        description = (description or "").strip() or self.default_description

        created = None
        for attempt in range(1, self.allocation_retries + 1):
            codes = allocator.sequence(self.next_id_for_lab(lab), count)
            rows = [{"id_code": code, "lab_name": lab, "description": description} for code in codes]
            try:
                created = self.repo.create_many(rows)
                break
            except IntegrityError as e:
                self.logger.warning(
                    "id code collision allocating %s..%s (attempt %d/%d): %s",
                    codes[0], codes[-1], attempt, self.allocation_retries, e.orig,
                )
        if created is None:
            raise DependencyError(f"Could not allocate {count} id codes for {lab}")

        refs = [(s.id, s.id_code) for s in created]
        self.logger.info("allocated %s..%s in %s", refs[0][1], refs[-1][1], lab)

        for system_id, id_code in refs:
            try:
                self._enrich(self.repo.get_by_id(system_id))
            except Exception as e:
                self.logger.error("Failed to generate QR for %s: %s", id_code, e)

        return [s for s in (self.repo.get_by_id(system_id) for system_id, _ in refs) if s is not None]

    def update_system(self, system_id, lab_name=None, description=None):
        """Patch lab and/or description, then regenerate the QR.

        ``id_code`` never changes, even when the system moves to another lab.
        With no fields supplied this only regenerates the QR.
        """
        system = self.get_system(system_id)
        errors = []
        if lab_name is not None:
            self._check_lab(lab_name, errors)
        if description is not None:
            self._check_description(description, errors)
        if errors:
            raise ValidationError(errors)

        changes = {}
        if lab_name is not None:
            changes["lab_name"] = lab_name
        if description is not None:
            changes["description"] = description.strip()
        if changes:
            system = self.repo.update(system_id, **changes)
        id_code = system.id_code

        try:
            return self._enrich(system)
        except Exception as e:
            self.logger.error("Failed to regenerate QR for %s: %s", id_code, e)
            return self.repo.get_by_id(system_id)

    def _discard_blob(self, id_code):
        try:
            self.blob_store.delete(qr_filename(id_code))
        except Exception as e:
            self.logger.error("Failed to delete QR for %s: %s", id_code, e)

    def delete_system(self, system_id) -> bool:
        system = self.get_system(system_id)
        if system.id_code:
            self._discard_blob(system.id_code)
        if not self.repo.delete(system_id):
            raise NotFoundError("System not found")
        return True

    def delete_systems(self, ids) -> int:
        if (not isinstance(ids, list) or not ids
                or not all(isinstance(i, str) and i for i in ids)):
            raise ValidationError([field_error("ids", "ids must be a non-empty array of strings")],
                                  message="Invalid or empty IDs array")
        for system in self.repo.get_by_ids(ids):
            if system.id_code:
                self._discard_blob(system.id_code)
        deleted = self.repo.delete_many(ids)
        return len(ids) if deleted is None else deleted

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------
    def qr_image(self, system_id):
        """Return ``(system, png_bytes)`` for a system whose QR exists."""
        system = self.get_system(system_id)
        if not system.qr_image_url:
            raise NotFoundError("QR code has not been generated for this system")
        data = self.blob_store.fetch(system.qr_image_url)
        if data is None:
            raise NotFoundError("QR image not found in storage")
        return system, data

    def export_csv(self) -> str:
        rows = [
            [
                s.id_code,
                s.lab_name,
                s.description or self.default_description,
                s.qr_image_url or "",
                s.system_url or "",
                fmt_ts(s.created_at) or "",
            ]
            for s in self.repo.get_all()
        ]
        frame = pd.DataFrame(rows, columns=CSV_COLUMNS)
        return frame.to_csv(index=False, lineterminator="\n", quoting=csv.QUOTE_NONNUMERIC)

    def export_qr_zip(self, lab) -> bytes:
        systems = self.repo.get_by_lab(lab)
        if not systems:
            raise NotFoundError("No systems found for this lab")

        buf = io.BytesIO()
        try:
            with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(f"{lab}/", b"")
                for system in systems:
                    if not system.qr_image_url:
                        continue
                    try:
                        data = self.blob_store.fetch(system.qr_image_url)
                    except Exception as e:
                        self.logger.error("Failed to fetch QR for %s: %s", system.id_code, e)
                        continue
                    if data is None:
                        self.logger.warning("QR for %s missing from storage, skipped", system.id_code)
                        continue
                    zf.writestr(f"{lab}/{qr_filename(system.id_code)}", data)
        except (OSError, ValueError, zipfile.BadZipFile) as e:
            raise DependencyError(f"Failed to build QR archive for {lab}: {e}") from e
        return buf.getvalue()

    def stats(self) -> dict:
        systems = self.repo.get_all()
        department_counts = {lab: 0 for lab in self.lab_names}
        groups = {}
        for s in systems:
            department_counts[s.lab_name] = department_counts.get(s.lab_name, 0) + 1
            config = s.description or self.default_description
            group = groups.setdefault(config, {"configuration": config, "count": 0, "departments": []})
            group["count"] += 1
            if s.lab_name not in group["departments"]:
                group["departments"].append(s.lab_name)

        return {
            "totalSystems": len(systems),
            "departmentCounts": department_counts,
            "configStats": sorted(groups.values(), key=lambda g: g["count"], reverse=True),
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
