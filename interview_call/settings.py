"""Settings the call controller reads when opening a voice session."""

from dataclasses import dataclass
from typing import Optional


__all__ = ["CallSettings"]


@dataclass(frozen=True)
class CallSettings:
    """
    Provider identifiers and timing for one controller.

    Attributes:
        web_token: Public token for the voice provider. Missing means calls cannot start.
        workflow_id: Provider workflow used in generation mode.
        interviewer_assistant_id: Provider assistant used in fixed-question mode.
        redirect_delay_seconds: Delay between entering finished and the navigation signal.
    """

    web_token: Optional[str] = None
    workflow_id: Optional[str] = None
    interviewer_assistant_id: Optional[str] = None
    redirect_delay_seconds: float = 2.0
