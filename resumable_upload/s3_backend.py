"""
Module implementing the upload service operations directly against S3.
"""
import logging
import time
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import CollaboratorError
from .models import CompletedPart, RemoteSession

logger = logging.getLogger(__name__)

PRESIGNED_URL_EXPIRY = 3600


class S3UploadBackend:
    """Drop-in replacement for UploadApiClient that signs URLs locally."""

    def __init__(self, bucket: str, key_prefix: str = "videos/",
                 s3_client: Optional[Any] = None,
                 url_expiry: int = PRESIGNED_URL_EXPIRY):
        """Initialize the S3 backend.

        Args:
            bucket: Destination S3 bucket
            key_prefix: Prefix prepended to every object key
            s3_client: Optional boto3 S3 client
            url_expiry: Lifetime of presigned part URLs in seconds
        """
        if not bucket:
            raise ValueError("bucket cannot be empty")
        self.bucket = bucket
        self.key_prefix = key_prefix
        self.s3_client = s3_client or boto3.client('s3')
        self.url_expiry = url_expiry

    def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        try:
            return getattr(self.s3_client, operation)(Bucket=self.bucket, **kwargs)
        except ClientError as e:
            status = e.response.get('ResponseMetadata', {}).get('HTTPStatusCode')
            raise CollaboratorError(f"{operation} failed: {e}", status_code=status) from e
        except BotoCoreError as e:
            raise CollaboratorError(f"{operation} failed: {e}") from e

    def start_session(self, file_name: str, content_type: str) -> RemoteSession:
        """Create a multipart upload under a timestamped key."""
        key = f"{self.key_prefix}{int(time.time() * 1000)}-{file_name}"
        response = self._call('create_multipart_upload', Key=key, ContentType=content_type)
        logger.info(f"Created multipart upload {response['UploadId']} for s3://{self.bucket}/{key}")
        return RemoteSession(upload_id=response['UploadId'], object_key=response.get('Key', key))

    def get_part_url(self, session: RemoteSession, part_number: int) -> str:
        """Presign an upload_part request for one part."""
        try:
            return self.s3_client.generate_presigned_url(
                'upload_part',
                Params={
                    'Bucket': self.bucket,
                    'Key': session.object_key,
                    'UploadId': session.upload_id,
                    'PartNumber': part_number
                },
                ExpiresIn=self.url_expiry
            )
        except (ClientError, BotoCoreError) as e:
            raise CollaboratorError(f"Could not sign part {part_number}: {e}") from e

    def list_parts(self, session: RemoteSession) -> List[CompletedPart]:
        """Every part S3 holds for the session, following pagination."""
        parts: List[CompletedPart] = []
        kwargs: Dict[str, Any] = {'Key': session.object_key, 'UploadId': session.upload_id}
        while True:
            response = self._call('list_parts', **kwargs)
            parts.extend(CompletedPart.from_wire(p) for p in response.get('Parts', []))
            if not response.get('IsTruncated'):
                return parts
            kwargs['PartNumberMarker'] = response['NextPartNumberMarker']

    def complete(self, session: RemoteSession, parts: List[CompletedPart]) -> None:
        """Assemble the object from the given parts."""
        self._call(
            'complete_multipart_upload',
            Key=session.object_key,
            UploadId=session.upload_id,
            MultipartUpload={'Parts': [p.to_wire() for p in parts]}
        )

    def abort(self, session: RemoteSession) -> None:
        """Abort the multipart upload, discarding stored parts."""
        self._call('abort_multipart_upload', Key=session.object_key, UploadId=session.upload_id)
