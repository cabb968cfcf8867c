import logging

from db import EmailLogRepository

logger = logging.getLogger(__name__)

WELCOME_SUBJECT = "Bienvenue sur Sport Tracker Pro"

WELCOME_TEMPLATE = """Bonjour {name},

Votre compte Sport Tracker Pro a été créé avec succès.
Identifiant : {email}

Nous vous recommandons de changer votre mot de passe
dès votre première connexion (onglet Profil).

L'équipe Sport Tracker Pro
"""


class EmailService:
    """Simulated mail delivery: messages are logged and recorded, not sent."""

    def __init__(self, log_repo: EmailLogRepository) -> None:
        self.logs = log_repo

    def send(self, address: str, subject: str, body: str) -> int:
        logger.info("email to %s: %s\n%s", address, subject, body)
        return self.logs.add(address, subject, body, True)

    def send_welcome(self, name: str, email: str) -> int:
        return self.send(
            email, WELCOME_SUBJECT, WELCOME_TEMPLATE.format(name=name, email=email)
        )
