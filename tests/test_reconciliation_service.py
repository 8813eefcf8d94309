from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from clubsphere.models.club_models import DriftReportResponse, ReconciliationResponse
from clubsphere.services.reconciliation_service import JOB_ID, ReconciliationService


async def test_run_once_delegates_to_propagator():
    propagator = MagicMock()
    propagator.reconcile = AsyncMock(return_value=ReconciliationResponse(role_grants_repaired=2))
    service = ReconciliationService(propagator=propagator, interval_minutes=5)

    result = await service.run_once()

    assert result.role_grants_repaired == 2
    propagator.reconcile.assert_awaited_once_with()


async def test_run_once_swallows_failures_for_next_interval():
    propagator = MagicMock()
    propagator.reconcile = AsyncMock(side_effect=RuntimeError("mongo down"))
    service = ReconciliationService(propagator=propagator, interval_minutes=5)

    assert await service.run_once() is None


async def test_start_registers_interval_job_and_stop_shuts_down():
    service = ReconciliationService(propagator=MagicMock(), interval_minutes=7)

    service.start()
    try:
        job = service.scheduler.get_job(JOB_ID)
        assert job is not None
        assert job.trigger.interval.total_seconds() == 7 * 60
        assert service.running
    finally:
        service.stop()


def test_drift_total_counts_both_kinds():
    drift = DriftReportResponse(memberships_missing_grants=[{}], applications_missing_promotion=[{}, {}])

    assert drift.total == 3


def test_cli_dry_run_exit_code():
    from clubsphere.cli import reconcile_cli

    drifted = ReconciliationResponse(dry_run=True, drift=DriftReportResponse(memberships_missing_grants=[{}]))
    with patch.object(reconcile_cli, "db_manager") as mock_db, patch.object(
        reconcile_cli, "consistency_propagator"
    ) as mock_propagator:
        mock_db.connect = AsyncMock()
        mock_db.disconnect = AsyncMock()
        mock_propagator.reconcile = AsyncMock(return_value=drifted)

        with pytest.raises(SystemExit) as exit_info:
            reconcile_cli.main(["--dry-run"])

    assert exit_info.value.code == 2

    mock_propagator.reconcile.assert_awaited_once_with(dry_run=True)
    mock_db.disconnect.assert_awaited_once()
