from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunNowRequest(CamelModel):
    start_id: Optional[int] = Field(None, ge=0, description="First catalog ID, inclusive")
    end_id: Optional[int] = Field(None, ge=0, description="Last catalog ID, inclusive")
    batch_size: Optional[int] = Field(None, ge=1, description="Records per staging bulk insert")


class StartRequest(RunNowRequest):
    cron_expression: Optional[str] = Field(None, description="Cron schedule in UTC, default daily at 2 AM")


class SyncStatsOut(CamelModel):
    total_runs: int
    successful_runs: int
    failed_runs: int
    last_error: Optional[str] = None


class ProgressOut(CamelModel):
    current_id: int
    start_id: int
    end_id: int
    percent: float
    vehicle_info: str


class SyncStatus(CamelModel):
    is_running: bool
    state: str
    last_run_time: Optional[datetime] = None
    next_run_time: Optional[datetime] = None
    schedule: Optional[str] = None
    stats: SyncStatsOut
    has_active_worker: bool
    progress: Optional[ProgressOut] = None
    last_injection_error: Optional[str] = None
    last_report: Optional[Dict[str, Any]] = None
