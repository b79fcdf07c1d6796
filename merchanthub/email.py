from flask_mail import Message
from flask import current_app, render_template
from extensions import mail


def send_email(to, subject, template, **kwargs):
    """Sends a templated email; failures are logged and never raised."""
    app = current_app._get_current_object()
    try:
        msg = Message(
            subject,
            sender=app.config['MAIL_DEFAULT_SENDER'],
            recipients=[to]
        )
        msg.body = render_template(template + '.txt', **kwargs)
        msg.html = render_template(template + '.html', **kwargs)
        mail.send(msg)
        app.logger.info("Email '%s' sent to %s", subject, to)
        return True
    except Exception as e:
        app.logger.warning("Error sending email to %s: %s", to, e)
        return False
