import json
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional


class CurationError(Exception):
    """Base class for curation pipeline errors"""
    code = "CURATION_ERROR"


class InvalidInputError(CurationError):
    """Malformed date or limit; rejected before any fetching"""
    code = "INVALID_INPUT"


class SourceUnavailableError(CurationError):
    """A sub-fetch failed or timed out; recovered as an empty result"""
    code = "SOURCE_UNAVAILABLE"


class CorroborationFailure(CurationError):
    """An item's day could not be confirmed; recovered by dropping the item"""
    code = "CORROBORATION_FAILURE"


class MalformedCandidatePayload(CurationError):
    """Candidate provider returned non-JSON or schema-violating content"""
    code = "MALFORMED_CANDIDATE_PAYLOAD"


class PipelineFailure(CurationError):
    """Uncaught failure in merge/select/enrich; surfaced as a failure response"""
    code = "UPSTREAM_OR_PIPELINE_FAILURE"


class ErrorSeverity(Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


class Criticality(Enum):
    """How much a run depends on a service"""
    CRITICAL = "critical"
    IMPORTANT = "important"
    OPTIONAL = "optional"


@dataclass
class RecordedError:
    """One recovered (or fatal) error of a run"""
    code: str
    error_type: str
    message: str
    service: str
    operation: str
    severity: ErrorSeverity
    hint: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_log(self) -> str:
        return json.dumps({
            'event': 'error',
            'code': self.code,
            'service': self.service,
            'operation': self.operation,
            'severity': self.severity.value,
            'error_type': self.error_type,
            'message': self.message,
            'context': self.context,
            'at': self.at.isoformat(),
        }, default=str)


class ErrorHandler:
    """
    Ledger of the errors a single pipeline run recovered from.

    Nothing here raises: the pipeline decides what is fatal, this class only classifies
    and keeps counts so a run can report how degraded its sources were.
    """

    SERVICE_CRITICALITY: Dict[str, Criticality] = {
        'pipeline': Criticality.CRITICAL,
        'wikipedia_feed': Criticality.IMPORTANT,
        'date_consensus': Criticality.OPTIONAL,
        'wikidata': Criticality.OPTIONAL,
        'candidates': Criticality.OPTIONAL,
        'enrichment': Criticality.OPTIONAL,
    }

    HINTS: Dict[str, str] = {
        'rate_limit': "Upstream is rate limiting. Reduce MAX_CONCURRENCY or spread requests out.",
        'timeout': "A source timed out. Raise FETCH_TIMEOUT if upstream latency is persistently high.",
        'connection': "Check network connectivity and the Wikimedia status page; the run continued without this source.",
        'payload': "Candidate provider returned unusable output; check the templates in config/prompts.yaml.",
    }

    def __init__(self, history_size: int = 200) -> None:
        self.history: Deque[RecordedError] = deque(maxlen=history_size)
        self.counts: Counter = Counter()
        self.logger = logging.getLogger(__name__)

    def criticality(self, service: str) -> Criticality:
        return self.SERVICE_CRITICALITY.get(service, Criticality.OPTIONAL)

    def classify_severity(self, error: Exception, service: str) -> ErrorSeverity:
        if isinstance(error, PipelineFailure):
            return ErrorSeverity.CRITICAL
        if isinstance(error, CorroborationFailure):
            return ErrorSeverity.INFO

        level = self.criticality(service)
        message = str(error).lower()
        transient = (
            '429' in message
            or 'rate limit' in message
            or 'timeout' in message
            or isinstance(error, (SourceUnavailableError, TimeoutError))
        )
        if transient:
            return ErrorSeverity.MEDIUM if level == Criticality.IMPORTANT else ErrorSeverity.LOW

        return {
            Criticality.CRITICAL: ErrorSeverity.HIGH,
            Criticality.IMPORTANT: ErrorSeverity.MEDIUM,
        }.get(level, ErrorSeverity.LOW)

    def hint_for(self, error: Exception) -> Optional[str]:
        message = str(error).lower()
        if ('rate' in message and 'limit' in message) or '429' in message:
            return self.HINTS['rate_limit']
        if 'timeout' in message or 'timed out' in message or isinstance(error, TimeoutError):
            return self.HINTS['timeout']
        if isinstance(error, SourceUnavailableError) or type(error).__name__ == 'ClientConnectorError':
            return self.HINTS['connection']
        if isinstance(error, MalformedCandidatePayload):
            return self.HINTS['payload']
        return None

    def handle_error(
        self,
        error: Exception,
        service: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None
    ) -> RecordedError:
        """Classify, remember and log one error; returns the ledger entry."""
        entry = RecordedError(
            code=getattr(error, 'code', CurationError.code),
            error_type=type(error).__name__,
            message=str(error) or type(error).__name__,
            service=service,
            operation=operation,
            severity=self.classify_severity(error, service),
            hint=self.hint_for(error),
            context=context or {},
        )
        self.history.append(entry)
        self.counts[entry.error_type] += 1

        if entry.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.HIGH):
            self.logger.error(entry.to_log())
        elif entry.severity == ErrorSeverity.INFO:
            self.logger.debug(entry.to_log())
        else:
            self.logger.warning(entry.to_log())
        return entry

    def repeated_failures(self, threshold: int = 3) -> List[str]:
        """Human-readable notes for (error type, service) pairs seen ``threshold`` times or more."""
        pairs = Counter((e.error_type, e.service) for e in self.history)
        return [
            f"Repeated pattern: {error_type} in {service} occurred {count} times in this run"
            for (error_type, service), count in pairs.items()
            if count >= threshold
        ]

    def summary(self) -> Dict[str, Any]:
        return {
            'total_errors': sum(self.counts.values()),
            'error_types': dict(self.counts),
            'services': dict(Counter(e.service for e in self.history)),
        }
