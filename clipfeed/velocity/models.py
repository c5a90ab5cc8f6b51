"""Data models for the velocity tracker."""

from datetime import datetime
from typing import Annotated, Any

from pydantic import Field

from clipfeed.data_model import StrictBaseModel
from clipfeed.velocity.state_machine import RefreshState


class RefreshSummary(StrictBaseModel):
    """Outcome of one ``refresh_all_recent`` run.

    Attributes:
        run_id: Refresh run identifier.
        started_at: Clock value the run evaluated clip ages against.
        state: Final run state.
        clips_refreshed: Clips snapshotted.
        samples_written: Snapshots that inserted or changed a row.
        samples_unchanged: Snapshots identical to the stored row.
        samples_purged: Samples removed by retention cleanup.
        duration_ms: Wall-clock duration of the run.
    """

    run_id: str
    started_at: datetime
    state: RefreshState
    clips_refreshed: Annotated[int, Field(ge=0)] = 0
    samples_written: Annotated[int, Field(ge=0)] = 0
    samples_unchanged: Annotated[int, Field(ge=0)] = 0
    samples_purged: Annotated[int, Field(ge=0)] = 0
    duration_ms: Annotated[float, Field(ge=0.0)] = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "state": self.state.name,
            "clips_refreshed": self.clips_refreshed,
            "samples_written": self.samples_written,
            "samples_unchanged": self.samples_unchanged,
            "samples_purged": self.samples_purged,
            "duration_ms": round(self.duration_ms, 2),
        }
