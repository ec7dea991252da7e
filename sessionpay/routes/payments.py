"""
Payment return pages
Static pages Mercado Pago redirects patients to after checkout
"""

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

router = APIRouter(prefix="/payment", tags=["payments"])

PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="es">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <title>{title}</title>
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
           display: flex; align-items: center; justify-content: center;
           min-height: 100vh; margin: 0; background: #f5f5f5; }}
    .card {{ background: #fff; padding: 40px; border-radius: 12px; text-align: center;
            max-width: 420px; box-shadow: 0 2px 10px rgba(0,0,0,0.08); }}
    .icon {{ font-size: 56px; }}
    h1 {{ color: {color}; font-size: 24px; }}
    p {{ color: #555; line-height: 1.5; }}
  </style>
</head>
<body>
  <div class="card">
    <div class="icon">{icon}</div>
    <h1>{title}</h1>
    <p>{message}</p>
  </div>
</body>
</html>
"""


def render_page(title: str, message: str, icon: str, color: str) -> str:
    return PAGE_TEMPLATE.format(title=title, message=message, icon=icon, color=color)


@router.get("/success", response_class=HTMLResponse)
def payment_success():
    return render_page(
        "¡Pago exitoso!",
        "Tu pago fue procesado correctamente. Recibirás la confirmación por WhatsApp "
        "y el link de videollamada 15 minutos antes de la sesión.",
        "✅",
        "#2e7d32",
    )


@router.get("/failure", response_class=HTMLResponse)
def payment_failure():
    return render_page(
        "Pago no completado",
        "No pudimos procesar tu pago. Puedes intentarlo nuevamente con el link que "
        "recibiste por WhatsApp.",
        "❌",
        "#c62828",
    )


@router.get("/pending", response_class=HTMLResponse)
def payment_pending():
    return render_page(
        "Pago pendiente",
        "Tu pago está siendo procesado. Te avisaremos por WhatsApp cuando se confirme.",
        "⏳",
        "#ef6c00",
    )
