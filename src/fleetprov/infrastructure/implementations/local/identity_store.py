"""
Local file-based identity store implementation.

Stores records as JSON documents in a local directory structure:
    {base_dir}/
        store/
            tokens/{token_id}.json
            devices/{device_id}.json
            accounts/{account_id}.json

Documents are loaded once at start-up and kept in memory; every commit is
written through to disk before it becomes visible. Each document is written
to a temporary file and moved into place with ``os.replace``. If any write of
a batch fails, the documents already written are restored to their previous
contents so the batch is never half-applied.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from loguru import logger

from fleetprov.domain.errors import StoreFailureError
from fleetprov.domain.models import Account, Device, DeviceRole, EnrollmentToken
from fleetprov.infrastructure.implementations.memory.identity_store import (
    InMemoryIdentityStore,
    StagedBatch,
)


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def token_to_dict(token: EnrollmentToken) -> dict[str, Any]:
    """Convert EnrollmentToken to JSON-serializable dict."""
    return {
        "id": token.id,
        "subject_id": token.subject_id,
        "issued_at": _dt_to_str(token.issued_at),
        "expires_at": _dt_to_str(token.expires_at),
        "declared_type": token.declared_type,
        "declared_chip": token.declared_chip,
        "declared_version": token.declared_version,
        "certificate_ref": token.certificate_ref,
        "fulfilled_at": _dt_to_str(token.fulfilled_at),
        "version": token.version,
    }


def dict_to_token(data: dict[str, Any]) -> EnrollmentToken:
    """Convert dict to EnrollmentToken."""
    return EnrollmentToken(
        id=data["id"],
        subject_id=data["subject_id"],
        issued_at=_str_to_dt(data["issued_at"]),
        expires_at=_str_to_dt(data["expires_at"]),
        declared_type=data.get("declared_type", ""),
        declared_chip=data.get("declared_chip", ""),
        declared_version=data.get("declared_version", ""),
        certificate_ref=data.get("certificate_ref"),
        fulfilled_at=_str_to_dt(data.get("fulfilled_at")),
        version=data.get("version", 0),
    )


def device_to_dict(device: Device) -> dict[str, Any]:
    """Convert Device to JSON-serializable dict."""
    return {
        "id": device.id,
        "uuid": device.uuid,
        "owner_id": device.owner_id,
        "device_type": device.device_type,
        "chip": device.chip,
        "firmware_version": device.firmware_version,
        "role": device.role.value,
        "parent_gateway_id": device.parent_gateway_id,
        "child_device_ids": list(device.child_device_ids),
        "created_at": _dt_to_str(device.created_at),
        "updated_at": _dt_to_str(device.updated_at),
        "version": device.version,
    }


def dict_to_device(data: dict[str, Any]) -> Device:
    """Convert dict to Device."""
    return Device(
        id=data["id"],
        uuid=data["uuid"],
        owner_id=data["owner_id"],
        device_type=data.get("device_type", ""),
        chip=data.get("chip", ""),
        firmware_version=data.get("firmware_version", ""),
        role=DeviceRole(data.get("role", DeviceRole.STANDALONE.value)),
        parent_gateway_id=data.get("parent_gateway_id"),
        child_device_ids=list(data.get("child_device_ids", [])),
        created_at=_str_to_dt(data.get("created_at")),
        updated_at=_str_to_dt(data.get("updated_at")),
        version=data.get("version", 0),
    )


def account_to_dict(account: Account) -> dict[str, Any]:
    """Convert Account to JSON-serializable dict."""
    return {
        "id": account.id,
        "device_ids": list(account.device_ids),
        "version": account.version,
    }


def dict_to_account(data: dict[str, Any]) -> Account:
    """Convert dict to Account."""
    return Account(
        id=data["id"],
        device_ids=list(data.get("device_ids", [])),
        version=data.get("version", 0),
    )


class LocalIdentityStore(InMemoryIdentityStore):
    """
    File-backed identity store for local development.

    Single-process only: the in-memory view is authoritative while the
    process runs, and the files are its durable copy.
    """

    def __init__(self, base_dir: str = "./.local_infrastructure"):
        """
        Initialize local identity store.

        Args:
            base_dir: Base directory for infrastructure storage
        """
        super().__init__()
        self.base_dir = Path(base_dir)
        self.store_dir = self.base_dir / "store"
        self.tokens_dir = self.store_dir / "tokens"
        self.devices_dir = self.store_dir / "devices"
        self.accounts_dir = self.store_dir / "accounts"

        for directory in (self.tokens_dir, self.devices_dir, self.accounts_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self._load()

        logger.info(
            f"Initialized LocalIdentityStore at {self.store_dir} "
            f"({len(self._tokens)} tokens, {len(self._devices)} devices, "
            f"{len(self._accounts)} accounts)"
        )

    @staticmethod
    def _record_path(directory: Path, record_id: str) -> Path:
        """Get path to a record document; ids are escaped to stay one path segment."""
        return directory / f"{quote(record_id, safe='')}.json"

    def _load(self) -> None:
        for path in self.tokens_dir.glob("*.json"):
            token = dict_to_token(json.loads(path.read_text()))
            self._tokens[token.id] = token

        for path in self.devices_dir.glob("*.json"):
            device = dict_to_device(json.loads(path.read_text()))
            self._devices[device.id] = device
            self._uuid_index[device.uuid] = device.id

        for path in self.accounts_dir.glob("*.json"):
            account = dict_to_account(json.loads(path.read_text()))
            self._accounts[account.id] = account

    def _document_changes(self, batch: StagedBatch) -> list[tuple[Path, str | None]]:
        changes: list[tuple[Path, str | None]] = []

        for token_id, token in batch.tokens.items():
            content = json.dumps(token_to_dict(token), indent=2) if token else None
            changes.append((self._record_path(self.tokens_dir, token_id), content))

        for device_id, device in batch.devices.items():
            content = json.dumps(device_to_dict(device), indent=2) if device else None
            changes.append((self._record_path(self.devices_dir, device_id), content))

        for account_id, account in batch.accounts.items():
            content = json.dumps(account_to_dict(account), indent=2) if account else None
            changes.append((self._record_path(self.accounts_dir, account_id), content))

        return changes

    @staticmethod
    def _write_document(path: Path, content: str | None) -> None:
        if content is None:
            path.unlink(missing_ok=True)
            return
        temp_path = path.with_name(f".{path.name}.tmp")
        temp_path.write_text(content)
        os.replace(temp_path, path)

    async def _persist(self, batch: StagedBatch) -> None:
        written: list[tuple[Path, str | None]] = []

        try:
            for path, content in self._document_changes(batch):
                previous = path.read_text() if path.exists() else None
                self._write_document(path, content)
                written.append((path, previous))
        except OSError as e:
            logger.error(f"Failed to persist batch, rolling back {len(written)} write(s): {e}")
            for path, previous in reversed(written):
                try:
                    self._write_document(path, previous)
                except OSError as restore_error:
                    logger.critical(
                        f"Could not restore {path} after failed commit: {restore_error}"
                    )
            raise StoreFailureError(f"Identity store write failed: {e}") from e
