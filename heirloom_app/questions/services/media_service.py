"""
MediaService - stable storage addresses for answer photos and video.

An upload's address key is built once, from the identity bound to the
recipient at the moment of upload::

    answers/{identity storage key}/{content id}/{file id}{extension}

The key and the uploading identity are persisted on the ``MediaAsset`` row.
Resolution always goes through that persisted key; it is never rebuilt from
whoever owns, views or asked for the content later. Claims therefore never
move or re-address stored files.
"""

from __future__ import annotations

import hashlib
import logging
import os
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.files.storage import storages
from django.utils import timezone

from heirloom_app.core.models import UserProfile

from ..models import MediaAsset

logger = logging.getLogger(__name__)

MEDIA_STORAGE_ALIAS = "media"
ADDRESS_PREFIX = "answers"


def get_media_storage():
    return storages[MEDIA_STORAGE_ALIAS]


def address_key_for(storage_key, content_id, file_id, extension: str = "") -> str:
    """Build the storage key for one uploaded file. Pure."""
    extension = (extension or "").lower()
    if extension and not extension.startswith("."):
        extension = f".{extension}"
    return f"{ADDRESS_PREFIX}/{storage_key}/{content_id}/{file_id}{extension}"


def _kind_for(content_type: str) -> str:
    if content_type.startswith("image/"):
        return MediaAsset.Kind.PHOTO
    if content_type.startswith("video/"):
        return MediaAsset.Kind.VIDEO
    raise ValidationError(
        {"media": [f"Unsupported file type '{content_type or 'unknown'}'."]}
    )


class MediaService:
    @classmethod
    def validate(cls, files) -> None:
        """Check a batch of uploads before anything is written."""
        max_files = getattr(settings, "QUESTION_MEDIA_MAX_FILES", 10)
        max_bytes = getattr(settings, "QUESTION_MEDIA_MAX_BYTES", 500 * 1024 * 1024)
        if len(files) > max_files:
            raise ValidationError(
                {"media": [f"Attach at most {max_files} files per answer."]}
            )
        for upload in files:
            _kind_for(getattr(upload, "content_type", "") or "")
            if upload.size > max_bytes:
                raise ValidationError(
                    {"media": [f"'{upload.name}' is larger than the upload limit."]}
                )

    @classmethod
    def digest(cls, file) -> str:
        """SHA-256 of an upload's bytes, leaving the file rewound."""
        sha = hashlib.sha256()
        for chunk in file.chunks():
            sha.update(chunk)
        file.seek(0)
        return sha.hexdigest()

    @classmethod
    def store(
        cls, identity, content_id, file, answer, recipient, digest: str = ""
    ) -> MediaAsset:
        """Write ``file`` under ``identity`` and record where it went.

        Args:
            identity: User the recipient was bound to at send time
            content_id: Public id of the answer the file belongs to
            file: Uploaded file (``name``, ``size``, ``content_type``)
            answer: Answer the asset is attached to
            recipient: Recipient that uploaded it
            digest: Precomputed content digest, computed here when empty

        Returns:
            The saved MediaAsset. Photos are ready at once; videos wait for
            transcoding.
        """
        content_type = getattr(file, "content_type", "") or ""
        kind = _kind_for(content_type)
        digest = digest or cls.digest(file)
        storage_key = UserProfile.get_or_create_for_user(identity).storage_key
        file_id = uuid.uuid4()
        extension = os.path.splitext(file.name or "")[1]
        key = address_key_for(storage_key, content_id, file_id, extension)

        saved_key = get_media_storage().save(key, file)
        if saved_key != key:
            # Storage renamed the object; the persisted key must match what exists.
            logger.warning(f"Media storage altered address key {key} -> {saved_key}")

        try:
            asset = MediaAsset.objects.create(
                answer=answer,
                recipient=recipient,
                file_id=file_id,
                owner_identity=identity,
                owner_storage_key=storage_key,
                address_key=saved_key,
                kind=kind,
                content_type=content_type,
                size=file.size or 0,
                original_name=(file.name or "")[:255],
                content_digest=digest,
                status=(
                    MediaAsset.Status.READY
                    if kind == MediaAsset.Kind.PHOTO
                    else MediaAsset.Status.PROCESSING
                ),
                processed_at=timezone.now() if kind == MediaAsset.Kind.PHOTO else None,
            )
        except Exception:
            cls.discard([saved_key])
            raise
        logger.info(f"Stored {kind} {asset.file_id} for answer {answer.pk}")
        return asset

    @classmethod
    def resolve(cls, media: MediaAsset) -> str:
        """Return a URL for ``media`` using its persisted address key."""
        return get_media_storage().url(media.address_key)

    @classmethod
    def mark_processed(cls, media: MediaAsset, status=MediaAsset.Status.READY):
        if status not in MediaAsset.Status.values:
            raise ValueError(f"Unknown media status {status!r}")
        media.status = status
        media.processed_at = timezone.now()
        media.save(update_fields=["status", "processed_at"])
        return media

    @classmethod
    def discard(cls, keys) -> None:
        """Delete objects written during a submission that did not commit."""
        storage = get_media_storage()
        for key in keys:
            try:
                storage.delete(key)
            except Exception:
                logger.exception(f"Failed to delete orphaned media object {key}")
