"""
TwiML that connects a call to the media stream websocket.
"""
from twilio.twiml.voice_response import Connect, VoiceResponse

from config import MEDIA_STREAM_PATH


def media_stream_url(host: str) -> str:
    return f"wss://{host}{MEDIA_STREAM_PATH}"


def build_stream_twiml(host: str) -> str:
    """<Response><Connect><Stream url="wss://host/media-stream"/></Connect></Response>"""
    response = VoiceResponse()
    connect = Connect()
    connect.stream(url=media_stream_url(host))
    response.append(connect)
    return str(response)
