import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..config import settings

_s3 = None


def _get_s3():
    global _s3
    if _s3 is None:
        missing = [
            k for k, v in {
                "SPACES_REGION": settings.spaces_region,
                "SPACES_BUCKET": settings.spaces_bucket,
                "SPACES_KEY": settings.spaces_key,
                "SPACES_SECRET": settings.spaces_secret,
            }.items() if not v
        ]
        if missing:
            raise RuntimeError(f"Missing Spaces env vars: {', '.join(missing)}")
        # Region endpoint, not the bucket endpoint: boto3 would otherwise put
        # the bucket name in the path twice.
        region_endpoint = f"https://{settings.spaces_region}.digitaloceanspaces.com"
        session = boto3.session.Session()
        _s3 = session.client(
            "s3",
            region_name=settings.spaces_region,
            endpoint_url=region_endpoint,
            aws_access_key_id=settings.spaces_key,
            aws_secret_access_key=settings.spaces_secret,
            config=Config(s3={"addressing_style": "virtual"}),
        )
    return _s3


def project_file_key(client_id: str, project_id: str, file_id: str, filename: str) -> str:
    safe_name = filename.replace("/", "_").strip() or "upload"
    return f"clients/{client_id}/projects/{project_id}/{file_id}/{safe_name}"


def contract_key(client_id: str, contract_id: str, version: int, filename: str) -> str:
    safe_name = filename.replace("/", "_").strip() or "contract.pdf"
    return f"clients/{client_id}/contracts/{contract_id}/v{version}/{safe_name}"


def presign_put(key: str, content_type: str, expires_seconds: int = 600) -> str:
    s3 = _get_s3()
    return s3.generate_presigned_url(
        ClientMethod="put_object",
        Params={
            "Bucket": settings.spaces_bucket,
            "Key": key,
            "ContentType": content_type,
            "ACL": "private",
        },
        ExpiresIn=expires_seconds,
    )


def presign_get(key: str, expires_seconds: int = 300) -> str:
    s3 = _get_s3()
    return s3.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": settings.spaces_bucket, "Key": key},
        ExpiresIn=expires_seconds,
    )


def head_object(key: str) -> dict | None:
    """HEAD object in Spaces. Returns {"size_bytes": int, "content_type": str} or None if missing."""
    s3 = _get_s3()
    try:
        resp = s3.head_object(Bucket=settings.spaces_bucket, Key=key)
        return {
            "size_bytes": resp["ContentLength"],
            "content_type": resp.get("ContentType"),
        }
    except ClientError as e:
        if e.response["Error"]["Code"] in ("404", "NoSuchKey"):
            return None
        raise


def delete_object(key: str) -> None:
    s3 = _get_s3()
    s3.delete_object(Bucket=settings.spaces_bucket, Key=key)
