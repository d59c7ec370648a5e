"""
Prize notification emails.

Notifications are fire-and-forget: a failed send is logged and never reaches
the caller, and the prize state that triggered it is already committed.
"""
import threading

from flask import current_app
from flask_mail import Message

from pokerclub_be.extensions import mail


def _send(app, recipient, subject, body):
    with app.app_context():
        try:
            mail.send(Message(subject=subject, recipients=[recipient], body=body))
            app.logger.info(f"Notification '{subject}' sent to {recipient}.")
        except Exception as e:
            app.logger.error(f"Failed to send notification '{subject}' to {recipient}: {str(e)}", exc_info=True)


def send_email(recipient, subject, body):
    if not recipient:
        current_app.logger.warning(f"Notification '{subject}' skipped: no recipient.")
        return
    app = current_app._get_current_object()
    if app.config.get('NOTIFICATIONS_ASYNC', True):
        threading.Thread(target=_send, args=(app, recipient, subject, body), daemon=True).start()
    else:
        _send(app, recipient, subject, body)


def notify_prize_applied(user, spin, prize):
    body = (
        f"Hi {user.username},\n\n"
        f"Your roulette prize \"{prize.name}\" has been credited to your account.\n"
    )
    if spin.prize_expiry_date:
        body += f"Use it before {spin.prize_expiry_date:%Y-%m-%d}.\n"
    body += f"\nSee your prizes at {current_app.config.get('CLIENT_URL')}/roulette\n"
    send_email(user.email, 'You won a roulette prize!', body)


def notify_spin_rejected(user, spin, prize):
    body = (
        f"Hi {user.username},\n\n"
        f"Your roulette prize \"{prize.name}\" could not be validated.\n"
    )
    if spin.notes:
        body += f"Reason: {spin.notes}\n"
    send_email(user.email, 'Roulette prize update', body)


def notify_user_validated(user):
    body = (
        f"Hi {user.username},\n\n"
        "Your account has been validated. Your real roulette spin is waiting for you!\n"
        f"\n{current_app.config.get('CLIENT_URL')}/roulette\n"
    )
    send_email(user.email, 'Your real spin is ready', body)
