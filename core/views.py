from django.conf import settings
from django.http import HttpResponse, JsonResponse

HOME_PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<meta name="viewport" content="width=device-width, initial-scale=1" />
<title>x402 Payment Gate</title>
<style>
    body {
        margin: 0;
        min-height: 100vh;
        display: flex;
        align-items: center;
        justify-content: center;
        font-family: "Inter", -apple-system, BlinkMacSystemFont, "Segoe UI", sans-serif;
        color: #0f172a;
        background: #f8fafc;
    }
    main {
        width: min(880px, 92vw);
        padding: 2.5rem 3rem;
        border-radius: 24px;
        background: #ffffff;
        border: 1px solid rgba(15, 23, 42, 0.08);
    }
    li { margin: 0.4rem 0; }
    code {
        background: rgba(59, 130, 246, 0.1);
        padding: 0.2rem 0.45rem;
        border-radius: 6px;
    }
</style>
</head>
<body>
    <main>
        <h1>x402 Payment Gate</h1>
        <p>
            Pay-per-request APIs settled in USDC. Request a priced resource to receive a
            <code>402 Payment Required</code> offer, then retry with proof of payment.
        </p>
        <ul>
            <li><code>Payment-Tx</code>: hash of a confirmed USDC transfer to the payment address.</li>
            <li><code>Payment-Signature</code>: base64 JSON EIP-3009 <code>transferWithAuthorization</code>.</li>
        </ul>
        <p>Payment address: <code>{pay_to}</code></p>
    </main>
</body>
</html>"""


def home(request):
    html = HOME_PAGE_HTML.replace('{pay_to}', settings.X402_PAY_TO)
    return HttpResponse(html, content_type="text/html; charset=utf-8")


def health(request):
    return JsonResponse({"status": "ok"})
