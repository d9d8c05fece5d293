import html
from typing import Any, Mapping, Optional


def format_money(money: float) -> str:
    """Two-decimal string the gateway expects, e.g. ``10`` -> ``"10.00"``."""
    return f"{money:.2f}"


def parse_money(text: str) -> float:
    return float(text)


def _first_values(source: Any) -> dict:
    out = {}
    if source is None:
        return out
    # Starlette's QueryParams / FormData keep every value; the gateway sends each key once
    getlist = getattr(source, "getlist", None)
    for k in source.keys():
        if getlist is not None:
            values = getlist(k)
            if not values:
                continue
            v = values[0]
        else:
            v = source[k]
            if isinstance(v, (list, tuple)):
                if not v:
                    continue
                v = v[0]
        if isinstance(v, str):
            out[k] = v
    return out


def merge_notify_params(query: Any, form: Optional[Any] = None) -> dict:
    """Flatten query and form mappings into one ``{name: value}`` dict.

    Form values win over query values with the same name.
    """
    params = _first_values(query)
    params.update(_first_values(form))
    return params


async def parse_notify_params(request) -> dict:
    """Extract notification parameters from a FastAPI/Starlette request.

    The query string is always read; the form body only for POST.
    """
    form = None
    if request.method == "POST":
        form = await request.form()
    return merge_notify_params(request.query_params, form)


_FORM_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>正在跳转到支付页面...</title>
</head>
<body>
    <form id="payForm" method="POST" action="{action}">
        {fields}
    </form>
    <script>document.getElementById('payForm').submit();</script>
</body>
</html>"""


def build_auto_submit_form(action: str, params: Mapping[str, str]) -> str:
    """HTML page that POSTs ``params`` to ``action`` as soon as it loads."""
    fields = "".join(
        '<input type="hidden" name="{}" value="{}">'.format(
            html.escape(k), html.escape(params[k])
        )
        for k in sorted(params)
    )
    return _FORM_TEMPLATE.format(action=html.escape(action), fields=fields)
