"""Telegram Bot API calls and forecast links."""
import logging

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API = "https://api.telegram.org"


class TelegramError(Exception):
    """Raised when Telegram cannot be reached or rejects a message."""
    pass


def _post(bot_token, method, timeout, **kwargs) -> dict:
    url = f"{TELEGRAM_API}/bot{bot_token}/{method}"
    try:
        response = requests.post(url, timeout=timeout, **kwargs)
        # Telegram reports failures as {"ok": false, "description": ...} with a 4xx status
        result = response.json()
    except requests.exceptions.RequestException as e:
        raise TelegramError(f"Telegram {method} request failed: {e}") from e
    except ValueError as e:
        raise TelegramError(f"Telegram {method} returned invalid JSON: {e}") from e
    logger.debug("Telegram %s -> ok=%s", method, result.get('ok'))
    return result


def send_message(bot_token: str, chat_id: str, text: str, parse_mode: str = "MarkdownV2", timeout: float = 30) -> dict:
    return _post(bot_token, "sendMessage", timeout, json={
        "chat_id": chat_id,
        "text": text,
        "parse_mode": parse_mode,
        "disable_web_page_preview": True,
    })


def send_photo(bot_token: str, chat_id: str, photo_url: str, caption=None, timeout: float = 30) -> dict:
    """Send a photo Telegram fetches itself from photo_url."""
    payload = {"chat_id": chat_id, "photo": photo_url}
    if caption:
        payload["caption"] = caption
    return _post(bot_token, "sendPhoto", timeout, json=payload)


def send_photo_bytes(bot_token: str, chat_id: str, png_bytes: bytes, caption=None, timeout: float = 30) -> dict:
    """Upload a PNG as a photo (multipart/form-data)."""
    data = {"chat_id": chat_id}
    if caption:
        data["caption"] = caption
    files = {"photo": ("night.png", png_bytes, "image/png")}
    return _post(bot_token, "sendPhoto", timeout, data=data, files=files)


def get_clear_outside_image_url(lat: float, lon: float) -> str:
    # Clear Outside expects coordinates rounded to 2 decimal places
    return f"https://clearoutside.com/forecast_image_large/{lat:.2f}/{lon:.2f}/forecast.png"


def get_clear_outside_url(lat: float, lon: float) -> str:
    return f"https://clearoutside.com/forecast/{lat:.2f}/{lon:.2f}"


def get_astrospheric_url(lat: float, lon: float) -> str:
    return f"https://www.astrospheric.com/?Lat={lat}&Lon={lon}"
