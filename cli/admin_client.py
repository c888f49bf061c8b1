"""HTTP client for the vault's administrative replication surface."""

import time
import uuid
from typing import List, Optional

import httpx

from common.logging_config import get_logger
from cli.config import Config

logger = get_logger(__name__)


class AdminError(Exception):
    """Raised when the vault answers an admin request with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


ERROR_MESSAGES = {
    'NOT_FOUND': 'File not found on server.',
    'SYNC_IN_PROGRESS': 'File is already being replicated. Try again shortly.',
    'SYNC_DISABLED': 'Replication is disabled: the vault has no remote tier configured.',
    'REMOTE_UNREACHABLE': 'Remote tier is unreachable.',
    'TRANSFER_TIMEOUT': 'Transfer to the remote tier timed out.',
}


class AdminClient:
    """HTTP client for the sync endpoints with retry logic and error handling."""

    def __init__(self, config: Config, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize admin client.

        Args:
            config: Configuration instance
            transport: Optional httpx transport (used by tests)
        """
        self.config = config
        self.session = httpx.Client(
            base_url=config.get_base_url(),
            timeout=config.get_timeout(),
            transport=transport,
        )
        self.request_id = None
        logger.debug(f"Initialized AdminClient [base_url={config.get_base_url()}]")

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> 'AdminClient':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _request_with_retry(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request with retry logic on 5xx errors and network failures.

        Raises:
            ConnectionError: If max retries exceeded or connection fails
        """
        retry_config = self.config.get_retry_config()
        max_retries = retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']

        self.request_id = str(uuid.uuid4())
        kwargs.setdefault('headers', {})['X-Request-ID'] = self.request_id

        last_exception = None
        for attempt in range(max_retries + 1):
            try:
                response = self.session.request(method, endpoint, **kwargs)
                logger.debug(
                    f"Response received: {method} {endpoint} status={response.status_code} [request_id={self.request_id}]"
                )

                if response.status_code >= 500 and attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Server error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} status={response.status_code}, retrying in {delay}s"
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException) as e:
                last_exception = e
                if attempt < max_retries:
                    delay = backoff ** attempt
                    logger.warning(
                        f"Network error (attempt {attempt + 1}/{max_retries + 1}): "
                        f"{method} {endpoint} error={type(e).__name__}, retrying in {delay}s"
                    )
                    time.sleep(delay)

        if isinstance(last_exception, httpx.TimeoutException):
            raise ConnectionError("Request timed out. Server may be overloaded.")
        raise ConnectionError("Cannot connect to vault server. Is it running?")

    def _handle(self, response: httpx.Response) -> dict:
        if response.status_code < 400:
            return response.json()

        try:
            error_data = response.json()
            detail = error_data.get('detail', 'Unknown error')
            code = error_data.get('code', 'UNKNOWN')
        except ValueError:
            detail = response.text or 'Unknown error'
            code = 'UNKNOWN'

        message = ERROR_MESSAGES.get(code, detail)
        raise AdminError(message, status_code=response.status_code, code=code)

    def queue_status(self) -> dict:
        return self._handle(self._request_with_retry("GET", "/sync/queue"))

    def process_queue(
        self,
        batch_size: Optional[int] = None,
        priority_first: bool = True,
        max_retries: Optional[int] = None,
        include_failed: bool = False,
    ) -> dict:
        payload = {"priority_first": priority_first, "include_failed": include_failed}
        if batch_size is not None:
            payload["batch_size"] = batch_size
        if max_retries is not None:
            payload["max_retries"] = max_retries
        return self._handle(self._request_with_retry("POST", "/sync/queue/process", json=payload))

    def force_sync(
        self,
        file_id: str,
        force_priority: Optional[str] = None,
        reset_retries: bool = False,
        update_priority: bool = True,
    ) -> dict:
        payload = {"reset_retries": reset_retries, "update_priority": update_priority}
        if force_priority:
            payload["force_priority"] = force_priority.upper()
        return self._handle(self._request_with_retry("POST", f"/sync/files/{file_id}", json=payload))

    def verify_remote(self, file_id: str) -> dict:
        return self._handle(self._request_with_retry("POST", f"/sync/files/{file_id}/verify"))

    def set_priority(self, file_id: str, priority: str) -> dict:
        return self._handle(
            self._request_with_retry("PUT", f"/sync/files/{file_id}/priority", json={"priority": priority.upper()})
        )

    def reset_retries(self, file_ids: Optional[List[str]] = None) -> int:
        payload = {"file_ids": file_ids} if file_ids else {}
        data = self._handle(self._request_with_retry("POST", "/sync/retries/reset", json=payload))
        return data["reset_count"]
