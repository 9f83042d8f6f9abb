"""Firebase Admin clients owned by the application lifespan (or the worker)"""

import logging
import uuid
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore

logger = logging.getLogger(__name__)


class FirebaseClients:
    """
    Owns one named firebase_admin App and the Firestore client derived from it.

    Built once at process start and passed to whatever needs it; close() releases the App
    so tests and workers can build as many instances as they like.
    """

    def __init__(self, project_id: Optional[str], credentials_path: Optional[str] = None):
        self.project_id = project_id
        self._firestore = None

        options = {"projectId": project_id} if project_id else None
        name = f"barberapp-{uuid.uuid4().hex[:8]}"
        try:
            if credentials_path:
                cred = credentials.Certificate(credentials_path)
                logger.info("Firebase Admin initialized with service account credentials")
            else:
                cred = credentials.ApplicationDefault()
                logger.info("Firebase Admin initialized with default credentials")
            self.app = firebase_admin.initialize_app(cred, options, name=name)
        except Exception as e:
            # Token verification still works with only a project ID
            logger.warning(f"⚠️ Firebase credentials unavailable, limited functionality: {e}")
            self.app = firebase_admin.initialize_app(options=options, name=name)

    def firestore(self):
        """Lazily build the Firestore client; only the Firestore backend needs it"""
        if self._firestore is None:
            self._firestore = firestore.client(app=self.app)
            logger.info(f"✅ Firestore client ready (project={self.project_id})")
        return self._firestore

    def close(self) -> None:
        if self._firestore is not None:
            self._firestore.close()
            self._firestore = None
        firebase_admin.delete_app(self.app)
        logger.info("Firebase Admin app released")
