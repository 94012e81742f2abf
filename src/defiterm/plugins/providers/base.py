"""Shared HTTP plumbing for provider plugins."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests


class ProviderError(Exception):
    """Error talking to a protocol API."""
    pass


class ApiClient:
    """Small JSON client around a requests.Session.

    Calls are blocking; commands reach them through ``call`` which runs them
    in a worker thread so the event loop stays free.
    """

    def __init__(
        self,
        base_url: str,
        timeout_s: float = 15.0,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.base_url = base_url
        self.timeout_s = timeout_s
        self._session = requests.Session()
        self._session.headers["Accept"] = "application/json"
        if headers:
            self._session.headers.update(headers)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url.rstrip("/") + "/", path.lstrip("/"))

    def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = self._session.request(method, self._url(path), timeout=self.timeout_s, **kwargs)
            response.raise_for_status()
            if response.content:
                return response.json()
            return {}
        except requests.exceptions.HTTPError as e:
            if e.response is not None:
                try:
                    body = e.response.json()
                    detail = None
                    if isinstance(body, dict):
                        detail = body.get("description") or body.get("error") or body.get("detail")
                    detail = detail or e.response.text or str(e)
                except ValueError:
                    detail = e.response.text or str(e)
                raise ProviderError(f"API error ({e.response.status_code}): {detail}")
            raise ProviderError(f"HTTP error: {e}")
        except requests.exceptions.ConnectionError:
            raise ProviderError(f"Cannot connect to {self.base_url}")
        except requests.exceptions.Timeout:
            raise ProviderError(f"Request to {self.base_url} timed out")
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Request failed: {e}")
        except ValueError:
            raise ProviderError(f"Invalid JSON from {self.base_url}")

    def get(self, path: str, **kwargs) -> Any:
        return self._request("GET", path, **kwargs)

    async def call(self, fn, *args, **kwargs) -> Any:
        """Run a blocking client method off the event loop."""
        return await asyncio.to_thread(fn, *args, **kwargs)
