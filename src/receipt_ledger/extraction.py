"""Vision-model receipt extraction using pydantic-ai."""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic_ai import Agent, BinaryContent

from receipt_ledger.config import get_gemini_api_key, get_llm_model
from receipt_ledger.errors import ExtractionError
from receipt_ledger.schemas import VisionReceiptResponse, validate_json_payload

logger = logging.getLogger(__name__)

_SYSTEM_PROMPT = """\
あなたは日本の税務に精通した会計士です。レシート画像を読み取り、次の情報を抽出してください。

- totalAmount: レシートの合計金額（税込、数値）
- receiptDate: 購入日（YYYY-MM-DD 形式）
- items: 品目ごとの一覧
  - name: 品目名
  - price: 金額（税込、数値）
  - accountSuggestion: 推奨される勘定科目（消耗品費、旅費交通費、会議費など）
  - taxNote: 税務上の注意点（軽減税率の対象など、簡潔に）

事業用の支出として一般的な勘定科目を想定してください。
判読しにくい文字は推測で補ってかまいません。
回答は上記キーを持つ JSON オブジェクトのみとし、説明文は付けないでください。\
"""

_USER_PROMPT = "このレシート画像を解析し、指定した JSON 形式で回答してください。"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

_MEDIA_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
    "pdf": "application/pdf",
}


def create_extraction_agent() -> Agent[None, str]:
    """Create a pydantic-ai Agent configured for receipt image extraction."""
    # Ensure API key is available (fail fast)
    get_gemini_api_key()

    return Agent(
        get_llm_model(),
        output_type=str,
        system_prompt=_SYSTEM_PROMPT,
    )


def media_type_for(blob_name: str) -> str:
    """Guess the media type from the blob extension, defaulting to JPEG."""
    extension = blob_name.rsplit(".", 1)[-1].lower() if "." in blob_name else ""
    return _MEDIA_TYPES.get(extension, "image/jpeg")


def extract_receipt(
    image: bytes,
    media_type: str,
    *,
    agent: Agent[None, str] | None = None,
) -> VisionReceiptResponse:
    """Send a receipt image to the vision model and validate its answer.

    Accepts an optional agent for dependency injection in tests.

    Raises:
        ExtractionError: the model call failed or returned no JSON object.
        SchemaValidationError: the JSON is malformed or does not match the
            response schema.
    """
    if agent is None:
        agent = create_extraction_agent()

    try:
        result: Any = agent.run_sync(
            [_USER_PROMPT, BinaryContent(data=image, media_type=media_type)]
        )
    except Exception as exc:
        msg = f"Vision model call failed: {exc}"
        raise ExtractionError(msg) from exc

    response = validate_json_payload(
        VisionReceiptResponse, _json_object_text(str(result.output))
    )
    logger.debug(
        "Vision model returned %d items dated %s",
        len(response.items),
        response.receipt_date,
    )
    return response


def _json_object_text(text: str) -> str:
    """Return the outermost brace-delimited span of ``text``.

    Models often wrap JSON in prose or Markdown fences.
    """
    match = _JSON_OBJECT.search(text)
    if match is None:
        msg = "No JSON object found in vision model response"
        raise ExtractionError(msg)
    return match.group(0)
