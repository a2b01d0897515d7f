"""
Metadata + blob store for ingested tariff artifacts.

Layout (identical for S3 and the local filesystem):
- blobs:   <BLOB_PREFIX>/<category>/<ms_timestamp>_<name>
- records: <RECORDS_PREFIX>/<collection>/<record_id>.json

Records are small JSON documents. insert_record appends under a generated id,
upsert_record overwrites the record stored under a caller-provided key. There is no
transaction across a blob and its record: a failure between the two writes leaves an
orphaned blob, which is accepted.
"""
from __future__ import annotations
import os
import re
import json
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from scanner_pipeline.errors import ExistenceCheckError, StoreWriteError
from scanner_pipeline.logs import jlog

_KEY_SAFE_RE = re.compile(r"[^0-9A-Za-z._\-א-ת]")


def _safe_record_id(key: str) -> str:
    rid = _KEY_SAFE_RE.sub("_", str(key)).strip("._")
    return rid[:200] or uuid.uuid4().hex


class StorageClient:
    """
    - S3 when s3_bucket is set, otherwise files under local_root.
    - find_by_field scans a collection; collections here hold tens to low hundreds of records.
    """
    def __init__(self, s3_bucket: Optional[str] = None, aws_region: Optional[str] = None,
                 local_root: str = "data/store", blob_prefix: str = "documents",
                 records_prefix: str = "records", public_base_url: Optional[str] = None):
        self.s3_bucket = s3_bucket
        self.aws_region = aws_region
        self.blob_prefix = blob_prefix.strip("/")
        self.records_prefix = records_prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None
        self.local_root = local_root
        self.s3 = None
        if s3_bucket:
            cfg = BotoConfig(retries={"max_attempts": 8, "mode": "standard"})
            session_args = {}
            if aws_region:
                session_args["region_name"] = aws_region
            self.s3 = boto3.client("s3", config=cfg, **session_args)
        else:
            Path(local_root).mkdir(parents=True, exist_ok=True)

    def preflight(self) -> bool:
        if not self.s3:
            return True
        try:
            self.s3.head_bucket(Bucket=self.s3_bucket)
            jlog("s3_preflight_ok", bucket=self.s3_bucket)
            return True
        except Exception as e:
            jlog("s3_preflight_failed", level="error", bucket=self.s3_bucket, error=str(e))
            return False

    # ---- keys ----
    def _blob_key(self, path: str) -> str:
        return f"{self.blob_prefix}/{path.lstrip('/')}"

    def _collection_prefix(self, collection: str) -> str:
        return f"{self.records_prefix}/{collection}/"

    def _record_key(self, collection: str, record_id: str) -> str:
        return f"{self._collection_prefix(collection)}{record_id}.json"

    def _local_path(self, key: str) -> Path:
        return Path(self.local_root) / key

    # ---- low level ----
    def _write(self, key: str, body: bytes, content_type: str) -> None:
        if self.s3:
            self.s3.put_object(Bucket=self.s3_bucket, Key=key, Body=body, ContentType=content_type)
            return
        p = self._local_path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_name(p.name + ".tmp")
        try:
            with tmp.open("wb") as fh:
                fh.write(body)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, p)
        finally:
            if tmp.exists():
                tmp.unlink()

    def _iter_record_bodies(self, collection: str):
        prefix = self._collection_prefix(collection)
        if self.s3:
            paginator = self.s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.s3_bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    key = obj.get("Key") or ""
                    if not key.endswith(".json"):
                        continue
                    resp = self.s3.get_object(Bucket=self.s3_bucket, Key=key)
                    yield resp["Body"].read()
        else:
            base = self._local_path(prefix)
            if not base.exists():
                return
            for p in sorted(base.glob("*.json")):
                yield p.read_bytes()

    # ---- store interface ----
    def find_by_field(self, collection: str, field: str, value: Any) -> List[Dict[str, Any]]:
        out: List[Dict[str, Any]] = []
        try:
            for body in self._iter_record_bodies(collection):
                try:
                    rec = json.loads(body.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    continue
                if isinstance(rec, dict) and rec.get(field) == value:
                    out.append(rec)
        except (ClientError, BotoCoreError, OSError) as e:
            raise ExistenceCheckError(f"read of {collection} failed: {e}") from e
        return out

    def put_blob(self, path: str, data: bytes, content_type: str) -> str:
        key = self._blob_key(path)
        try:
            self._write(key, data, content_type)
        except (ClientError, BotoCoreError, OSError) as e:
            jlog("blob_put_failed", level="error", key=key, error=str(e))
            raise StoreWriteError(f"blob write failed for {key}: {e}") from e
        return key

    def public_url(self, blob_ref: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{blob_ref}"
        if self.s3:
            return f"s3://{self.s3_bucket}/{blob_ref}"
        return str(self._local_path(blob_ref))

    def insert_record(self, collection: str, fields: Dict[str, Any]) -> str:
        return self._put_record(collection, uuid.uuid4().hex, fields)

    def upsert_record(self, collection: str, key: str, fields: Dict[str, Any]) -> str:
        return self._put_record(collection, _safe_record_id(key), fields)

    def _put_record(self, collection: str, record_id: str, fields: Dict[str, Any]) -> str:
        key = self._record_key(collection, record_id)
        body = json.dumps(fields, ensure_ascii=False, indent=2, sort_keys=True, default=str).encode("utf-8")
        try:
            self._write(key, body, "application/json")
        except (ClientError, BotoCoreError, OSError) as e:
            jlog("record_put_failed", level="error", collection=collection, key=key, error=str(e))
            raise StoreWriteError(f"record write failed for {key}: {e}") from e
        return record_id


def document_exists(store, name: str, collection: str = "files", field: str = "name") -> bool:
    """Skip gate. Any store failure reads as "not there"."""
    try:
        return bool(store.find_by_field(collection, field, name))
    except Exception as e:
        jlog("existence_check_failed", level="warn", name=name, collection=collection, error=str(e))
        return False
