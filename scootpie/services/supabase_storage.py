from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

import requests

from scootpie.core.config import Settings


@dataclass(slots=True)
class SupabaseUploadResult:
    bucket: str
    object_path: str
    public_url: str | None


def upload_tryon_image(
    cfg: Settings,
    object_name: str,
    image_bytes: bytes,
    content_type: str = "image/jpeg",
    timeout_sec: float = 20.0,
) -> SupabaseUploadResult | None:
    """
    Upload a generated try-on composite to Supabase Storage.
    Returns None when storage is not configured.
    Raises RuntimeError on upload failure.
    """
    if not cfg.supabase_url or not cfg.supabase_service_role_key:
        return None

    object_path = f"outfits/{object_name}"
    bucket = cfg.supabase_tryon_bucket
    encoded_path = quote(object_path, safe="/._-")
    base = cfg.supabase_url.rstrip("/")
    upload_url = f"{base}/storage/v1/object/{bucket}/{encoded_path}"
    headers = {
        "apikey": cfg.supabase_service_role_key,
        "Authorization": f"Bearer {cfg.supabase_service_role_key}",
        "Content-Type": content_type,
        "x-upsert": "true",
    }
    resp = requests.post(upload_url, headers=headers, data=image_bytes, timeout=timeout_sec)
    if resp.status_code >= 400:
        raise RuntimeError(f"Supabase upload failed: {resp.status_code} {resp.text[:300]}")

    public_url = f"{base}/storage/v1/object/public/{bucket}/{encoded_path}"
    return SupabaseUploadResult(bucket=bucket, object_path=object_path, public_url=public_url)
