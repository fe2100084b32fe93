from __future__ import annotations

import logging

import requests

from stagekit.errors import StageActionError, StageTimeoutError

from deploy_orchestrator.collaborators.base import ProbeResponse


class HttpHealthProbe:
    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ):
        self._session = session or requests.Session()
        self._logger = logger

    def get(self, url: str, *, timeout_s: float) -> ProbeResponse:
        if timeout_s <= 0:
            raise StageTimeoutError(f"No time left to probe {url}")
        if self._logger:
            self._logger.info("Probing %s (timeout_s=%.0f)", url, timeout_s)
        try:
            response = self._session.get(url, timeout=timeout_s)
        except requests.exceptions.Timeout as exc:
            raise StageTimeoutError(f"Health probe timed out: {url}", detail=str(exc)) from exc
        except requests.exceptions.RequestException as exc:
            raise StageActionError(f"Health probe failed: {url}", detail=str(exc)) from exc
        return ProbeResponse(status_code=response.status_code, body=response.text or "")
