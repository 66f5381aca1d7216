"""Electronic signatures and versioned governance configuration."""

import pytest

from conftest import PASSWORD
from ctms.errors import AccessDeniedError, SignatureRequiredError, ValidationError
from ctms.schemas.governance import GovernanceRollbackRequest, GovernanceUpdateRequest
from ctms.storage import repositories as repo


def _update(name, config, password=PASSWORD, reason="Quarterly review"):
    return GovernanceUpdateRequest(
        name=name, config=config, signature_password=password, signature_reason=reason
    )


async def test_missing_signature_rejected(services, db, admin):
    """Governance changes without a signature are refused."""
    with pytest.raises(SignatureRequiredError) as exc:
        await services.governance.update(db, admin, _update("v1", {"pass_threshold": 35}, password=""))
    assert exc.value.reason_code == "SIGNATURE_REQUIRED"

    with pytest.raises(SignatureRequiredError):
        await services.governance.update(db, admin, _update("v1", {}, reason="   "))
    assert await repo.get_active_governance(db) is None


async def test_wrong_password_is_audited(services, workflow, db, admin):
    """A wrong password is refused and audited."""
    with pytest.raises(SignatureRequiredError) as exc:
        await services.governance.update(db, admin, _update("v1", {}, password="guess"))
    assert exc.value.reason_code == "INVALID_SIGNATURE"

    failed = await workflow.audit("SIGNATURE_FAILED")
    assert len(failed) == 1
    assert failed[0].metadata_json["failure_reason"] == "INVALID_PASSWORD"
    assert await repo.latest_governance_version(db) == 0


async def test_employee_cannot_sign(services, workflow, db, employee):
    """Only privileged users may sign governance changes."""
    with pytest.raises(AccessDeniedError):
        await services.governance.update(db, employee, _update("v1", {}))
    rejected = await workflow.audit("REJECTED_TRANSITION")
    assert rejected[0].metadata_json["action"] == "GOVERNANCE_CONFIG_UPDATE"


async def test_updates_append_versions(services, workflow, db, admin):
    """Each change appends a new version and retires the old one."""
    v1 = await services.governance.update(db, admin, _update("Baseline", {"pass_threshold": 35}))
    v2 = await services.governance.update(db, admin, _update("Stricter", {"pass_threshold": 50}))

    assert (v1.version, v2.version) == (1, 2)
    assert v1.is_active is False
    assert v2.is_active is True
    assert (await services.governance.current(db)).version == 2

    signature = await repo.get_signature(db, v2.signature_id)
    assert signature.signer_id == admin.user_id
    assert signature.reason == "Quarterly review"
    assert signature.ip_address == "10.0.0.1"

    assert len(await workflow.audit("SIGNATURE_CAPTURED")) == 2
    updated = await workflow.audit("GOVERNANCE_CONFIG_UPDATED")
    assert {e.metadata_json["version"] for e in updated} == {1, 2}
    assert all(len(e.metadata_json["config_hash"]) == 64 for e in updated)


async def test_rollback_creates_new_version(services, workflow, db, admin):
    """Rollback copies an old version forward as a new one."""
    await services.governance.update(db, admin, _update("Baseline", {"pass_threshold": 35}))
    await services.governance.update(db, admin, _update("Stricter", {"pass_threshold": 50}))

    body = GovernanceRollbackRequest(signature_password=PASSWORD, signature_reason="Revert")
    v3 = await services.governance.rollback(db, admin, 1, body)

    assert v3.version == 3
    assert v3.config == {"pass_threshold": 35}
    assert v3.rolled_back_from == 1
    assert v3.name == "Rollback to v1: Baseline"
    active = await repo.list_active_governance(db)
    assert [c.version for c in active] == [3]
    assert [c.version for c in await services.governance.history(db)] == [3, 2, 1]

    rolled = await workflow.audit("GOVERNANCE_CONFIG_ROLLED_BACK")
    assert rolled[0].metadata_json["from_version"] == 1
    assert rolled[0].metadata_json["new_version"] == 3


async def test_rollback_to_active_version_rejected(services, db, admin):
    """Rolling back to the active version is refused."""
    await services.governance.update(db, admin, _update("Baseline", {}))
    body = GovernanceRollbackRequest(signature_password=PASSWORD, signature_reason="Revert")
    with pytest.raises(ValidationError):
        await services.governance.rollback(db, admin, 1, body)
