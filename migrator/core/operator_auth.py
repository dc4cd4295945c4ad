import logging
import secrets

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from migrator.core.settings import settings

operator_basic = HTTPBasic(realm="schema-migrator")
logger = logging.getLogger(__name__)


def _matches(supplied: str, expected: str) -> bool:
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


def verify_operator_auth(credentials: HTTPBasicCredentials = Depends(operator_basic)) -> str:
    """Guard for docs and the /migrations operator routes; returns the operator name."""
    username_ok = _matches(credentials.username, settings.operator_username)
    password_ok = _matches(credentials.password, settings.operator_password)
    granted = username_ok and password_ok
    logger.info("operator_auth_checked operator=%s granted=%s", credentials.username, granted)
    if granted:
        return credentials.username
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid operator credentials",
        headers={"WWW-Authenticate": 'Basic realm="schema-migrator"'},
    )
