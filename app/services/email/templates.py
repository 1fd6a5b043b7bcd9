# app/services/email/templates.py
from __future__ import annotations

from dataclasses import dataclass
from html import escape

ACCESS_SUBJECT = "Seu acesso ao Desafio 7 Dias (Dormir Natural)"

PROGRAM_CONTENTS = [
    "7 áudios guiados (5–10 min/noite)",
    "Checklist diário para acompanhar seu progresso",
    "Técnicas naturais anti-ansiedade",
    "Videoaulas curtas (opcional)",
]


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html: str
    text: str


def first_name(nome: str) -> str:
    parts = (nome or "").split()
    return parts[0] if parts else "Olá"


def access_email(nome: str, magic_link: str) -> EmailTemplate:
    """Post-purchase e-mail carrying the single-use login link."""
    name = first_name(nome)

    items_html = "\n".join(f"      <li>{escape(item)}</li>" for item in PROGRAM_CONTENTS)
    html = f"""<!DOCTYPE html>
<html lang="pt-BR">
<head>
  <meta charset="utf-8">
  <title>{escape(ACCESS_SUBJECT)}</title>
</head>
<body style="font-family: Helvetica, Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto;">
  <h1>Olá, {escape(name)}!</h1>
  <p>Obrigado por adquirir o <strong>Desafio 7 Dias (Dormir Natural)</strong>.</p>
  <p style="text-align: center;">
    <a href="{escape(magic_link, quote=True)}" style="display: inline-block; padding: 15px 30px; background-color: #2c5aa0; color: #fff; text-decoration: none; border-radius: 5px;">Acessar minha área</a>
  </p>
  <p><strong>Importante:</strong> este link é válido por 24 horas e só pode ser usado uma vez.</p>
  <h3>Dentro do programa, você vai encontrar:</h3>
  <ul>
{items_html}
  </ul>
  <p>Se precisar de ajuda, basta responder este e-mail.</p>
  <p>Bons sonhos!<br>Equipe Dormir Natural</p>
  <p style="font-size: 14px; color: #666;">Se você não fez esta compra, entre em contato conosco imediatamente.</p>
</body>
</html>"""

    items_text = "\n".join(f"- {item}" for item in PROGRAM_CONTENTS)
    text = (
        f"Olá, {name}!\n\n"
        "Obrigado por adquirir o Desafio 7 Dias (Dormir Natural).\n\n"
        f"ACESSE SUA ÁREA: {magic_link}\n"
        "(Válido por 24h, uso único)\n\n"
        "Dentro do programa, você vai encontrar:\n"
        f"{items_text}\n\n"
        "Se precisar de ajuda, responda este e-mail.\n\n"
        "Bons sonhos!\n"
        "Equipe Dormir Natural"
    )

    return EmailTemplate(subject=ACCESS_SUBJECT, html=html, text=text)
