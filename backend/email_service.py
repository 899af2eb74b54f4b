"""
Service d'emails SendGrid pour le hub Imprimerie Grégoire
- Envoi du lien d'épreuve au client
- Confirmation d'approbation au client
- Avis interne (approbation / demande de modification)
"""

import os
import re
import html
import logging
from typing import Optional
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

logger = logging.getLogger("email_service")

# Configuration
SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
SENDER_EMAIL = os.environ.get('SENDER_EMAIL', 'info@promotiongregoire.com')
SENDER_NAME = os.environ.get('SENDER_NAME', 'Imprimerie Grégoire')
INTERNAL_NOTIFICATION_EMAIL = os.environ.get('INTERNAL_NOTIFICATION_EMAIL', 'info@promotiongregoire.ca')

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value.strip()))


class EmailService:
    """Service centralisé pour l'envoi d'emails"""

    def __init__(self, api_key: str = None, sender: str = None, internal_recipient: str = None):
        self.api_key = SENDGRID_API_KEY if api_key is None else api_key
        self.sender = sender or SENDER_EMAIL
        self.internal_recipient = internal_recipient or INTERNAL_NOTIFICATION_EMAIL

    def _send_email(self, to_email: str, subject: str, html_content: str, text_content: str = None) -> bool:
        """Envoie un email via SendGrid"""
        if not self.api_key:
            logger.error("SENDGRID_API_KEY non configurée")
            return False

        try:
            message = Mail(
                from_email=Email(self.sender, SENDER_NAME),
                to_emails=To(to_email),
                subject=subject,
                html_content=Content("text/html", html_content),
                plain_text_content=Content("text/plain", text_content) if text_content else None
            )

            sg = SendGridAPIClient(self.api_key)
            response = sg.send(message)

            if response.status_code in [200, 202]:
                logger.info(f"Email envoyé à {to_email}: {subject}")
                return True
            else:
                logger.error(f"Erreur envoi email: {response.status_code}")
                return False

        except Exception as e:
            logger.error(f"Exception envoi email: {str(e)}")
            return False

    # ==================== ÉPREUVE → CLIENT ====================

    def build_proof_email(
        self,
        client_name: str,
        order_number: str,
        version: int,
        approve_url: str,
        download_url: Optional[str] = None
    ) -> dict:
        """Sujet + HTML + texte du mail d'épreuve"""
        proof_version = f"v{version}"
        subject = f"Épreuve {order_number} – {proof_version}"
        name = html.escape(client_name)

        download_html = ""
        download_text = ""
        if download_url:
            download_html = f"""
    <p>Vous pouvez également télécharger directement le fichier :
       <a href="{download_url}" style="color:#5a7a51; text-decoration:underline;">
         Télécharger l'épreuve ({proof_version})
       </a>
    </p>"""
            download_text = f"\nTélécharger l'épreuve ({proof_version}) :\n{download_url}\n"

        html_content = f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height:1.6; color:#333; max-width:600px; margin:0 auto; padding:20px;">
  <div style="background:#f8f9fa; padding:30px; border-radius:8px; border-left:4px solid #5a7a51;">
    <h2 style="color:#5a7a51; margin:0 0 20px 0;">Votre épreuve est prête – {proof_version}</h2>
    <p>Bonjour {name},</p>
    <p>Votre épreuve (BAT) pour la commande <strong>{html.escape(order_number)}</strong> est maintenant disponible pour validation.</p>
    <div style="margin:30px 0; text-align:center;">
      <a href="{approve_url}"
         style="display:inline-block; padding:15px 30px; background-color:#5a7a51; color:#fff; text-decoration:none; border-radius:6px; font-weight:700;">
        Consulter et approuver l'épreuve
      </a>
    </div>{download_html}
    <div style="margin-top:30px; padding-top:20px; border-top:1px solid #e9ecef; font-size:14px; color:#6c757d;">
      <p><strong>Imprimerie Grégoire</strong><br>
      Pour toute question, répondez simplement à ce message.</p>
    </div>
  </div>
</body></html>"""

        text_content = f"""Bonjour {client_name},

Votre épreuve ({proof_version}) pour la commande {order_number} est prête.

Voir et approuver / demander des modifications :
{approve_url}
{download_text}
Imprimerie Grégoire"""

        return {"subject": subject, "html": html_content, "text": text_content}

    def send_proof_to_client(
        self,
        to_email: str,
        client_name: str,
        order_number: str,
        version: int,
        approve_url: str,
        download_url: Optional[str] = None
    ) -> bool:
        message = self.build_proof_email(client_name, order_number, version, approve_url, download_url)
        return self._send_email(to_email, message["subject"], message["html"], message["text"])

    # ==================== DÉCISIONS ====================

    def send_approval_confirmation(
        self,
        to_email: str,
        contact_name: str,
        order_number: str,
        version: int,
        approver_name: str
    ) -> bool:
        """Confirmation au client: épreuve approuvée, production lancée"""
        subject = f"Épreuve approuvée - Production démarrée pour {order_number}"
        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <h1 style="color: #333; border-bottom: 2px solid #10b981; padding-bottom: 10px;">Épreuve approuvée</h1>
            <p>Bonjour {html.escape(contact_name)},</p>
            <p>Votre épreuve pour la commande <strong>{html.escape(order_number)}</strong> a été approuvée
               et la production a commencé.</p>
            <p><strong>Épreuve :</strong> Version {version}<br>
               <strong>Approuvé par :</strong> {html.escape(approver_name)}</p>
            <p style="color: #666; font-size: 12px; margin-top: 40px;">
                Cette confirmation a été générée automatiquement suite à votre approbation.
            </p>
        </div>
        """
        return self._send_email(to_email, subject, html_content)

    def send_internal_decision_notice(
        self,
        approved: bool,
        business_name: str,
        order_number: str,
        version: int,
        client_name: str,
        comments: Optional[str] = None
    ) -> bool:
        """Avis à l'équipe: production à démarrer ou nouvelle version à préparer"""
        if approved:
            subject = f"Production à démarrer - {order_number} approuvée"
            action = "Démarrer la production."
        else:
            subject = f"Modification demandée - Épreuve {order_number}"
            action = "Réviser les commentaires du client et préparer une nouvelle version de l'épreuve."

        comments_html = ""
        if comments:
            comments_html = f"""
            <h3 style="color: #f59e0b;">Commentaires du client :</h3>
            <div style="background-color: #f8f9fa; padding: 15px; border-left: 4px solid #f59e0b;">
                <p style="margin: 0; white-space: pre-wrap;">{html.escape(comments)}</p>
            </div>"""

        html_content = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
            <p><strong>Client :</strong> {html.escape(business_name or '')}</p>
            <p><strong>Commande :</strong> {html.escape(order_number)}</p>
            <p><strong>Épreuve :</strong> Version {version}</p>
            <p><strong>Par :</strong> {html.escape(client_name)}</p>
            {comments_html}
            <p style="margin-top: 20px;"><strong>Action requise :</strong> {action}</p>
        </div>
        """
        return self._send_email(self.internal_recipient, subject, html_content)
