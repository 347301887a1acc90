import math
import re
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from ketus import db
from ketus.models import KetoLog, Profile, User

DEFAULT_SCORE = 5
DEFAULT_PROGRESS_NOTE = "Brak notatki"
MAX_NOTE_LENGTH = 500


class NotAuthenticatedError(RuntimeError):
    pass


def _as_float(value) -> float | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    else:
        match = re.search(r"-?\d+(?:[.,]\d+)?", str(value))
        if not match:
            return None
        try:
            number = float(match.group(0).replace(",", "."))
        except ValueError:
            return None
    return number if math.isfinite(number) else None


def _score(value) -> int:
    number = _as_float(value)
    if not number:
        return DEFAULT_SCORE
    return max(1, min(10, int(round(number))))


def _as_date(value) -> date:
    if isinstance(value, date):
        return value
    if value:
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            pass
    return date.today()


def normalize_metrics(args: dict | None) -> dict:
    """Coerce model tool-call arguments into a storable metric log.

    Scores that are missing or zero fall back to 5, others are clamped to
    1-10. Weight falls back to 0.0 and never goes negative.
    """
    args = args if isinstance(args, dict) else {}

    weight = _as_float(args.get("weight"))
    if weight is None or weight < 0:
        weight = 0.0

    note = str(args.get("progressNote") or "").strip()[:MAX_NOTE_LENGTH]

    return {
        "weight": round(weight, 1),
        "wellBeing": _score(args.get("wellBeing")),
        "sleepQuality": _score(args.get("sleepQuality")),
        "progressNote": note or DEFAULT_PROGRESS_NOTE,
    }


def fetch_logs(user: User | None) -> list[dict]:
    if user is None:
        raise NotAuthenticatedError("Not authenticated")

    rows = (
        KetoLog.query.filter_by(user_id=user.id)
        .order_by(KetoLog.date.asc(), KetoLog.id.asc())
        .all()
    )
    return [row.to_dict() for row in rows]


def save_log(user: User | None, log: dict) -> dict:
    if user is None:
        raise NotAuthenticatedError("Not authenticated")

    metrics = normalize_metrics(log)
    row = KetoLog(
        user_id=user.id,
        date=_as_date(log.get("date")),
        weight=metrics["weight"],
        well_being=metrics["wellBeing"],
        sleep_quality=metrics["sleepQuality"],
        progress_note=metrics["progressNote"],
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    return row.to_dict()


def get_profile(user: User | None) -> dict | None:
    if user is None:
        return None

    profile = Profile.query.filter_by(user_id=user.id).first()
    return profile.to_dict() if profile else None
