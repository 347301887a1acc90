from datetime import date, datetime

from ketus import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    profile = db.relationship("Profile", backref="user", uselist=False, lazy=True)
    keto_logs = db.relationship("KetoLog", backref="user", lazy=True)


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False)
    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)
    is_premium = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "is_premium": bool(self.is_premium),
        }


class KetoLog(db.Model):
    __tablename__ = "keto_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.Date, default=date.today, index=True, nullable=False)

    weight = db.Column(db.Float, nullable=False, default=0.0)  # kg
    well_being = db.Column(db.Integer, nullable=False, default=5)  # 1-10
    sleep_quality = db.Column(db.Integer, nullable=False, default=5)  # 1-10
    progress_note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "weight": self.weight,
            "wellBeing": self.well_being,
            "sleepQuality": self.sleep_quality,
            "progressNote": self.progress_note,
        }
