from functools import partial, wraps
from uuid import uuid4

from flask import (
    Blueprint,
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    session,
    url_for,
)
from werkzeug.security import check_password_hash, generate_password_hash

from ketus import db
from ketus.ai import build_client, chat_with_ketus
from ketus.chat import ConversationStore, KetusSession, load_user_data
from ketus.dashboard import build_dashboard_context, stat_cards
from ketus.models import Profile, User
from ketus.store import NotAuthenticatedError, fetch_logs, get_profile, save_log

bp = Blueprint("main", __name__)

MIN_PASSWORD_LENGTH = 8


def normalize_email(value: str | None):
    if not value:
        return None
    return value.strip().lower()


def normalize_text(value):
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def conversation_store() -> ConversationStore:
    return current_app.extensions["ketus_conversations"]


def current_chat_id() -> str:
    chat_id = session.get("chat_id")
    if not chat_id:
        chat_id = uuid4().hex
        session["chat_id"] = chat_id
    return chat_id


def wants_json() -> bool:
    return request.is_json or request.accept_mimetypes.best == "application/json"


def login_required(view):
    @wraps(view)
    def wrapped(*args, **kwargs):
        if g.user is None:
            if wants_json() or request.path.startswith("/api/"):
                return jsonify({"ok": False, "error": "Not authenticated"}), 401
            return redirect(url_for("main.index"))
        return view(*args, **kwargs)

    return wrapped


def gateway_chat(message: str, history: list[dict]):
    config = current_app.config
    with build_client(config.get("OPENAI_API_KEY"), timeout=config.get("OPENAI_TIMEOUT_SECONDS")) as client:
        return chat_with_ketus(message, history, client=client, model=config.get("OPENAI_CHAT_MODEL"))


@bp.app_errorhandler(NotAuthenticatedError)
def handle_not_authenticated(exc):
    return jsonify({"ok": False, "error": str(exc)}), 401


@bp.before_app_request
def load_logged_in_user():
    user_id = session.get("user_id")
    g.user = db.session.get(User, user_id) if user_id else None


@bp.get("/healthz")
def healthz():
    return jsonify({"ok": True})


@bp.get("/")
def index():
    if g.user is None:
        return render_template("auth.html", is_sign_up=request.args.get("mode") == "register")

    logs, profile = load_user_data(g.user)
    messages = conversation_store().get(session.get("chat_id"))
    return render_template(
        "index.html",
        logs=logs,
        messages=messages,
        **build_dashboard_context(logs, profile),
    )


def _render_auth_error(message: str, is_sign_up: bool, status: int = 400):
    return (
        render_template(
            "auth.html",
            is_sign_up=is_sign_up,
            error=message,
            email=request.form.get("email") or "",
            first_name=request.form.get("first_name") or "",
            last_name=request.form.get("last_name") or "",
        ),
        status,
    )


@bp.post("/register")
def register():
    if g.user is not None:
        return redirect(url_for("main.index"))

    first_name = normalize_text(request.form.get("first_name"))
    last_name = normalize_text(request.form.get("last_name"))
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""

    if not first_name or not last_name:
        return _render_auth_error("First and last name are required.", True)
    if not email:
        return _render_auth_error("Email is required.", True)
    if len(password) < MIN_PASSWORD_LENGTH:
        return _render_auth_error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.", True)
    if User.query.filter_by(email=email).first():
        return _render_auth_error("An account with that email already exists.", True)

    user = User(email=email, password_hash=generate_password_hash(password))
    db.session.add(user)
    db.session.flush()
    db.session.add(Profile(user_id=user.id, first_name=first_name, last_name=last_name))
    db.session.commit()
    current_app.logger.info("Registered user_id=%s", user.id)

    session.clear()
    session["user_id"] = user.id
    return redirect(url_for("main.index"))


@bp.post("/login")
def login():
    if g.user is not None:
        return redirect(url_for("main.index"))

    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""

    user = User.query.filter_by(email=email).first() if email else None
    if not user or not check_password_hash(user.password_hash, password):
        return _render_auth_error("Invalid email or password.", False, status=401)

    conversation_store().drop(session.get("chat_id"))
    session.clear()
    session["user_id"] = user.id
    current_app.logger.info("Signed in user_id=%s", user.id)
    return redirect(url_for("main.index"))


@bp.post("/logout")
@login_required
def logout():
    conversation_store().drop(session.get("chat_id"))
    session.clear()
    return redirect(url_for("main.index"))


@bp.post("/chat")
@login_required
def chat():
    if request.is_json:
        body = request.get_json(silent=True) or {}
        text = body.get("message") if isinstance(body, dict) else None
    else:
        text = request.form.get("message")
    text = (text or "").strip()

    if not text:
        if wants_json():
            return jsonify({"ok": False, "error": "Message text is required."}), 400
        flash("Napisz coś do Ketusia.", "error")
        return redirect(url_for("main.index"))

    store = conversation_store()
    chat_id = current_chat_id()
    logs, _ = load_user_data(g.user)
    ketus_session = KetusSession(
        store.get(chat_id),
        logs,
        chat_fn=gateway_chat,
        save_fn=partial(save_log, g.user),
    )
    turn = ketus_session.send_message(text)
    store.save(chat_id, ketus_session.messages)

    if wants_json():
        return jsonify(
            {
                "ok": True,
                "reply": turn.reply,
                "saved": turn.saved,
                "failed_saves": turn.failed_saves,
                "logs": ketus_session.logs,
                "stats": stat_cards(ketus_session.logs),
            }
        )

    if turn.failed_saves:
        flash("Nie udało się zapisać metryk. Spróbuj jeszcze raz.", "error")
    return redirect(url_for("main.index"))


@bp.get("/api/logs")
@login_required
def api_logs():
    return jsonify({"ok": True, "logs": fetch_logs(g.user)})


@bp.get("/api/profile")
@login_required
def api_profile():
    return jsonify({"ok": True, "profile": get_profile(g.user)})


@bp.get("/api/messages")
@login_required
def api_messages():
    return jsonify({"ok": True, "messages": conversation_store().get(session.get("chat_id"))})
