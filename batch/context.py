"""
Job parameters and the run-scoped context handed to processors.

The process date ("as-of" date) is resolved once per step run here, so
processors never read the wall clock themselves.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional, Union
import hashlib
import json
import logging
import time

from core.exceptions import JobParameterError

logger = logging.getLogger(__name__)

PROCESS_DATE = "process_date"
RUN_TOKEN = "run_token"

# Parameters that distinguish one job instance from another
IDENTIFYING_PARAMETERS = (RUN_TOKEN, PROCESS_DATE)

PROCESS_DATE_FORMAT = "%Y%m%d"


def resolve_process_date(value: Union[int, str, None]) -> Optional[datetime]:
    """
    Parse a yyyyMMdd process date into midnight of that day.
    
    Accepts a bare integer (20240131) or an 8-digit string ("20240131").
    
    Returns:
        Midnight of the date, or None when no date was given
    
    Raises:
        JobParameterError: If the value is not a valid yyyyMMdd date
    """
    if value is None or value == "":
        return None
    
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise JobParameterError(
            "Process date must be an integer or a string in yyyyMMdd form",
            context={"process_date": repr(value)}
        )
    
    text = str(value).strip()
    if len(text) != 8 or not text.isdigit():
        raise JobParameterError(
            "Process date must have exactly 8 digits (yyyyMMdd)",
            context={"process_date": text}
        )
    
    try:
        parsed = datetime.strptime(text, PROCESS_DATE_FORMAT)
    except ValueError as e:
        raise JobParameterError(
            "Process date is not a calendar date",
            context={"process_date": text},
            original_exception=e
        )
    
    logger.debug(f"Process date {value!r} resolved to {parsed.isoformat()}")
    return parsed


def normalize_process_date(value: Union[int, str, None]) -> Optional[str]:
    """Canonical yyyyMMdd string for a process date, None when absent"""
    parsed = resolve_process_date(value)
    return parsed.strftime(PROCESS_DATE_FORMAT) if parsed is not None else None


def normalize_parameters(parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Validate launch parameters and fill in the run token.
    
    A missing run token is replaced by the launch time in milliseconds,
    so every plain launch is a distinct job instance.
    The process date is stored as its canonical yyyyMMdd string.
    """
    params = dict(parameters or {})
    
    if params.get(RUN_TOKEN) is None:
        params[RUN_TOKEN] = int(time.time() * 1000)
    else:
        try:
            params[RUN_TOKEN] = int(params[RUN_TOKEN])
        except (TypeError, ValueError) as e:
            raise JobParameterError(
                "Run token must be an integer",
                context={"run_token": repr(params[RUN_TOKEN])},
                original_exception=e
            )
    
    if params.get(PROCESS_DATE) in (None, ""):
        params.pop(PROCESS_DATE, None)
    else:
        params[PROCESS_DATE] = normalize_process_date(params[PROCESS_DATE])
    
    return params


def compute_job_key(job_name: str, parameters: Dict[str, Any]) -> str:
    """SHA-256 over the job name and its identifying parameters"""
    identifying = {
        name: str(parameters[name])
        for name in IDENTIFYING_PARAMETERS
        if parameters.get(name) is not None
    }
    payload = json.dumps({"job": job_name, "parameters": identifying}, sort_keys=True)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class JobExecution:
    """Identity of the running job attempt, shared by all of its steps"""
    job_name: str
    job_run_id: int
    run_id: str
    job_key: str
    attempt: int
    parameters: Dict[str, Any]
    
    @property
    def is_restart(self) -> bool:
        return self.attempt > 1


@dataclass(frozen=True)
class RunContext:
    """
    Immutable values a processor may depend on.
    
    processed_at is the configured process date when one was given,
    otherwise the time the step run started.
    """
    job_name: str
    run_id: str
    step_name: str
    processed_at: datetime
    process_date: Optional[date] = None
    
    @classmethod
    def for_step(cls, execution: JobExecution, step_name: str, step_started_at: datetime) -> "RunContext":
        as_of = resolve_process_date(execution.parameters.get(PROCESS_DATE))
        return cls(
            job_name=execution.job_name,
            run_id=execution.run_id,
            step_name=step_name,
            processed_at=as_of or step_started_at,
            process_date=as_of.date() if as_of else None,
        )
