"""
Outbound call origination through the Twilio REST API.
"""
import logging
from typing import Callable, Optional

from twilio.rest import Client

logger = logging.getLogger(__name__)


class CallServiceNotConfigured(RuntimeError):
    pass


class CallService:
    """Places outbound calls that land on the same media stream as inbound ones."""

    def __init__(
        self,
        account_sid: Optional[str],
        auth_token: Optional[str],
        from_number: Optional[str],
        client_factory: Callable[[str, str], Client] = Client,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self._client_factory = client_factory
        self._client: Optional[Client] = None

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    @property
    def client(self) -> Client:
        if not self.configured:
            raise CallServiceNotConfigured("Twilio credentials or from-number are not configured")
        if self._client is None:
            self._client = self._client_factory(self.account_sid, self.auth_token)
        return self._client

    def place_call(self, to: str, twiml: str) -> str:
        """Dial `to` and return the new call's SID."""
        call = self.client.calls.create(from_=self.from_number, to=to, twiml=twiml)
        logger.info("Outbound call %s placed to %s", call.sid, to)
        return call.sid
