"""Error taxonomy for evidence processing and analysis runs.

Per-file errors (validation, extraction, encoding) are collected on the batch
result. Run-fatal errors (incomplete batch, remote protocol/transport) move the
orchestrator into its Failed state.
"""


class EvidenceAnalyzerError(Exception):
    """Base error for the evidence analyzer."""

    pass


class ValidationError(EvidenceAnalyzerError):
    """File rejected by type or size policy. Fatal to that file only."""

    pass


class BatchTooSmallError(ValidationError):
    """Batch has fewer files than a cross-source analysis needs."""

    pass


class ExtractionError(EvidenceAnalyzerError):
    """Metadata could not be read. The file proceeds with empty metadata."""

    pass


class EncodingError(EvidenceAnalyzerError):
    """File content could not be read or encoded. Fatal to that file only."""

    pass


class BatchIncompleteError(EvidenceAnalyzerError):
    """One or more files failed validation or encoding."""

    def __init__(self, message: str, errors: list | None = None):
        super().__init__(message)
        self.errors = errors or []


class RemoteError(EvidenceAnalyzerError):
    """Base error for the remote extraction/reasoning capability."""

    def __init__(self, message: str, phase: str | None = None, raw_response: str | None = None):
        super().__init__(message)
        self.phase = phase
        self.raw_response = raw_response


class RemoteProtocolError(RemoteError):
    """Remote output was empty, malformed or did not match the expected shape."""

    pass


class RemoteTransportError(RemoteError):
    """Network, timeout or quota failure talking to the remote capability.

    `partial_stream` is set when reasoning steps were already forwarded
    before the failure; such a request is not repeated.
    """

    def __init__(
        self,
        message: str,
        phase: str | None = None,
        raw_response: str | None = None,
        partial_stream: bool = False,
    ):
        super().__init__(message, phase=phase, raw_response=raw_response)
        self.partial_stream = partial_stream


class InvalidTransitionError(EvidenceAnalyzerError):
    """Pipeline state machine was asked to make an illegal transition."""

    pass
