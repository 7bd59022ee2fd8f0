import os
import json
import logging
import firebase_admin
from firebase_admin import credentials, firestore as _firestore
from google.cloud.firestore import Client as FirestoreClient

logger = logging.getLogger(__name__)

def init_firebase() -> None:
    try:
        firebase_admin.get_app()
    except ValueError:
        sa_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON")
        if not sa_json:
            raise RuntimeError("FIREBASE_SERVICE_ACCOUNT_JSON is not set")
        cred = credentials.Certificate(json.loads(sa_json))
        firebase_admin.initialize_app(cred)
        logger.info("firebase app initialised for project %s", cred.project_id)

def get_db() -> FirestoreClient:
    """
    Return a Firestore client.
    """
    return _firestore.client()
