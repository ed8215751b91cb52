"""Vapi voice session provider."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from interview_call.errors import ProviderError
from interview_call.events import ProviderEventStream
from interview_call.models import (
    ProviderCall,
    ProviderEvent,
    ProviderFault,
    SessionDescriptor,
    SessionEnded,
    SessionKind,
    SessionStarted,
    Speaker,
    SpeechEnded,
    SpeechStarted,
    TranscriptFinal,
    TranscriptInterim,
)


logger = logging.getLogger(__name__)


_ROLE_TO_SPEAKER = {
    "user": Speaker.CALLER,
    "assistant": Speaker.ASSISTANT,
    "bot": Speaker.ASSISTANT,
    "system": Speaker.SYSTEM,
}


def _speaker(role: Any) -> Speaker | None:
    return _ROLE_TO_SPEAKER.get(str(role).lower()) if role else None


def normalize_vapi_message(message: dict[str, Any]) -> ProviderEvent | None:
    """
    Convert one Vapi server/client message into a provider event.

    Returns None for message types the call does not act on.
    """
    message_type = str(message.get("type") or "").lower()

    if message_type == "status-update":
        call_status = str(message.get("status") or "").lower()
        if call_status == "in-progress":
            return SessionStarted()
        if call_status == "ended":
            return SessionEnded(reason=message.get("endedReason"))
        return None

    if message_type == "transcript" or message_type.startswith("transcript["):
        text = str(message.get("transcript") or "").strip()
        speaker = _speaker(message.get("role"))
        if not text or speaker is None:
            return None
        if str(message.get("transcriptType") or "").lower() == "final":
            return TranscriptFinal(speaker=speaker, text=text)
        return TranscriptInterim(speaker=speaker, text=text)

    if message_type == "speech-update":
        speech_status = str(message.get("status") or "").lower()
        speaker = _speaker(message.get("role"))
        if speech_status == "started":
            return SpeechStarted(speaker=speaker)
        if speech_status == "stopped":
            return SpeechEnded(speaker=speaker)
        return None

    if message_type == "error":
        error = message.get("error")
        if isinstance(error, dict):
            return ProviderFault(
                message=str(error.get("message") or "Unknown provider error"),
                code=str(error["code"]) if error.get("code") is not None else None,
            )
        return ProviderFault(message=str(error or message.get("message") or "Unknown provider error"))

    return None


def extract_call_id(payload: dict[str, Any]) -> str | None:
    """Find the provider call id in a webhook body ({"message": {..., "call": {"id"}}})."""
    message = payload.get("message", payload)
    if not isinstance(message, dict):
        return None
    call = message.get("call")
    if isinstance(call, dict) and call.get("id"):
        return str(call["id"])
    call_id = message.get("callId") or payload.get("callId")
    return str(call_id) if call_id else None


class VapiVoiceProvider:
    """Open web calls on Vapi and relay its server messages as provider events."""

    provider_type = "vapi"

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.vapi.ai",
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.events = ProviderEventStream()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._call: ProviderCall | None = None
        self._stop_requested = False

    @property
    def call(self) -> ProviderCall | None:
        return self._call

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def build_start_payload(
        descriptor: SessionDescriptor,
        variable_values: dict[str, str],
    ) -> dict[str, Any]:
        if descriptor.kind is SessionKind.WORKFLOW:
            return {
                "workflowId": descriptor.identifier,
                "workflowOverrides": {"variableValues": dict(variable_values)},
            }
        return {
            "assistantId": descriptor.identifier,
            "assistantOverrides": {"variableValues": dict(variable_values)},
        }

    async def start(
        self,
        descriptor: SessionDescriptor,
        variable_values: dict[str, str],
    ) -> ProviderCall:
        if self._call is not None:
            raise ProviderError("A voice session is already open on this provider.")

        payload = self.build_start_payload(descriptor, variable_values)
        try:
            response = await self._client.post(
                f"{self.base_url}/call/web",
                headers=self._headers,
                json=payload,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("Vapi call start failed: %s", exc)
            raise ProviderError("Failed to start call. Please try again.") from exc

        if response.status_code >= 400:
            logger.error(
                "Vapi call start rejected: HTTP %d: %s",
                response.status_code,
                response.text[:160],
            )
            raise ProviderError("Failed to start call. Please try again.")

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError("Failed to start call. Please try again.") from exc

        call_id = body.get("id") if isinstance(body, dict) else None
        if not call_id:
            raise ProviderError("Failed to start call. Please try again.")

        monitor = body.get("monitor") or {}
        self._call = ProviderCall(
            call_id=str(call_id),
            web_call_url=body.get("webCallUrl"),
            control_url=monitor.get("controlUrl") if isinstance(monitor, dict) else None,
        )
        logger.info("Vapi web call %s created (%s)", self._call.call_id, descriptor.kind.value)
        if self._stop_requested:
            try:
                await self._end_call(self._call)
            except ProviderError as exc:
                logger.warning(
                    "Vapi call %s was stopped while opening and could not be ended: %s",
                    self._call.call_id,
                    exc.message,
                )
        return self._call

    async def stop(self) -> None:
        """End the open call, or the next one start() creates if none is open yet."""
        if self._call is None:
            logger.debug("Vapi stop requested with no open call; ending it once created")
            self._stop_requested = True
            return
        await self._end_call(self._call)

    async def _end_call(self, call: ProviderCall) -> None:
        if not call.control_url:
            logger.warning("Vapi call %s has no control URL; cannot end it remotely", call.call_id)
            return

        try:
            response = await self._client.post(
                call.control_url,
                json={"type": "end-call"},
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"Failed to end call: {exc}") from exc

        if response.status_code >= 400:
            raise ProviderError(f"Failed to end call: HTTP {response.status_code}")
        logger.info("Vapi call %s end requested", call.call_id)

    async def ingest(self, message: dict[str, Any]) -> ProviderEvent | None:
        """Publish the provider event carried by one Vapi message, if any."""
        event = normalize_vapi_message(message)
        if event is None:
            logger.debug("Ignoring Vapi message type=%s", message.get("type"))
            return None
        await self.events.publish(event)
        return event

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
