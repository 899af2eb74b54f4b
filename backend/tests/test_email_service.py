"""
EmailService: contenu des messages et comportement sans clé SendGrid
"""

from email_service import EmailService, is_valid_email


def test_email_validation():
    assert is_valid_email("marie@client.test")
    assert is_valid_email("  marie@client.test ")
    assert not is_valid_email("marie@client")
    assert not is_valid_email("not an email")
    assert not is_valid_email("")
    assert not is_valid_email(None)


def test_proof_email_contains_link_and_version():
    service = EmailService(api_key="")
    message = service.build_proof_email(
        client_name="Marie <Tremblay>",
        order_number="CMD-1001",
        version=3,
        approve_url="https://client.test/epreuve/abc",
        download_url="https://client.test/api/public/proofs/abc/file"
    )

    assert message["subject"] == "Épreuve CMD-1001 – v3"
    assert "https://client.test/epreuve/abc" in message["html"]
    assert "https://client.test/epreuve/abc" in message["text"]
    assert "https://client.test/api/public/proofs/abc/file" in message["text"]
    assert "Marie &lt;Tremblay&gt;" in message["html"]


def test_proof_email_without_download_link():
    message = EmailService(api_key="").build_proof_email("Marie", "CMD-1", 1, "https://client.test/epreuve/x")
    assert "Télécharger" not in message["html"]


def test_sending_without_api_key_reports_failure():
    service = EmailService(api_key="", internal_recipient="atelier@test.local")

    assert service.send_proof_to_client("marie@client.test", "Marie", "CMD-1", 1, "https://x") is False
    assert service.send_approval_confirmation("marie@client.test", "Marie", "CMD-1", 1, "Jean") is False
    assert service.send_internal_decision_notice(True, "Boulangerie", "CMD-1", 1, "Jean") is False


def test_sendgrid_errors_never_raise(monkeypatch):
    import email_service

    class ExplodingClient:
        def __init__(self, api_key):
            pass

        def send(self, message):
            raise RuntimeError("network down")

    monkeypatch.setattr(email_service, "SendGridAPIClient", ExplodingClient)
    service = EmailService(api_key="SG.test")

    assert service.send_internal_decision_notice(False, "Boulangerie", "CMD-1", 2, "Jean", "Logo") is False


def test_sendgrid_accepted(monkeypatch):
    import email_service

    sent = []

    class Response:
        status_code = 202

    class RecordingClient:
        def __init__(self, api_key):
            self.api_key = api_key

        def send(self, message):
            sent.append(message)
            return Response()

    monkeypatch.setattr(email_service, "SendGridAPIClient", RecordingClient)
    service = EmailService(api_key="SG.test")

    assert service.send_approval_confirmation("marie@client.test", "Marie", "CMD-1", 1, "Jean") is True
    assert len(sent) == 1
