"""
Profile images are copied into every lobby player entry and every
comment of the user. Changing the image means rewriting all of those
copies, so the full list of writes is collected first and committed as
one Firestore batch.
"""
import base64
import binascii
import logging
from typing import List, NamedTuple

from google.cloud.firestore import Client as FirestoreClient, FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath
from google.cloud.firestore_v1.document import DocumentReference

from utils.errors import EncodingFailed

logger = logging.getLogger(__name__)

# лимит Firestore на один WriteBatch
MAX_BATCH_WRITES = 500


class ImageWrite(NamedTuple):
    reference:  DocumentReference
    field_path: str


def validate_image(image_data: str) -> str:
    """Strip an optional data: URL prefix and make sure the rest is base64."""
    raw = image_data.strip()
    if raw.startswith("data:") and "," in raw:
        raw = raw.split(",", 1)[1]
    if not raw:
        raise EncodingFailed()
    try:
        base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise EncodingFailed()
    return raw


def image_worklist(db: FirestoreClient, user_id: str) -> List[ImageWrite]:
    work = [ImageWrite(db.collection("users").document(user_id), "image_data")]

    for snap in db.collection("lobbies").stream():
        players = (snap.to_dict() or {}).get("players", {})
        if user_id in players:
            path = FieldPath("players", user_id, "image_data").to_api_repr()
            work.append(ImageWrite(snap.reference, path))

    comments = (
        db.collection_group("comments")
          .where(filter=FieldFilter("user_id", "==", user_id))
          .stream()
    )
    for snap in comments:
        work.append(ImageWrite(snap.reference, "image_data"))

    return work


def apply_image(db: FirestoreClient, work: List[ImageWrite], image_data: str) -> int:
    batch = db.batch()
    for item in work:
        batch.update(item.reference, {item.field_path: image_data})
    batch.commit()
    logger.info("profile image fanned out to %d documents", len(work))
    return len(work)
