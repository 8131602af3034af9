# ads_attribution/views.py
import json
from functools import wraps

from django.http import JsonResponse
from django.views.decorators.cache import cache_control
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from .models import normalize_shop
from .services.diagnostics import diagnostics_for
from .services.issues import list_issues, resolve_issue, summarize_issues


def staff_json(view):
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        if not (request.user.is_authenticated and request.user.is_staff):
            return JsonResponse({"ok": False, "error": "Forbidden"}, status=403)
        return view(request, *args, **kwargs)
    return wrapper


def _shop(request, body=None):
    shop = request.GET.get("shop") or (body or {}).get("shop")
    return normalize_shop(shop)


@require_GET
@staff_json
def issues_summary(request):
    shop = _shop(request)
    if not shop:
        return JsonResponse({"ok": False, "error": "Missing shop"}, status=400)
    return JsonResponse({"ok": True, "shop": shop, **summarize_issues(shop)})


@require_GET
@staff_json
def issues_list(request):
    shop = _shop(request)
    if not shop:
        return JsonResponse({"ok": False, "error": "Missing shop"}, status=400)
    issues = list_issues(shop, status=request.GET.get("status"), limit=request.GET.get("limit", 50))
    return JsonResponse({"ok": True, "shop": shop, "issues": issues})


@csrf_exempt
@require_POST
@staff_json
def issue_resolve(request, issue_id):
    try:
        body = json.loads(request.body or b"{}")
    except ValueError:
        return JsonResponse({"ok": False, "error": "Invalid JSON"}, status=400)
    if not isinstance(body, dict):
        body = {}
    shop = _shop(request, body)
    if not shop:
        return JsonResponse({"ok": False, "error": "Missing shop"}, status=400)
    result = resolve_issue(shop, issue_id, note=body.get("note"))
    return JsonResponse(result, status=200 if result["ok"] else 404)


@require_GET
@staff_json
@cache_control(private=True, max_age=60)
def diagnostics(request):
    shop = _shop(request)
    if not shop:
        return JsonResponse({"ok": False, "error": "Missing shop"}, status=400)
    result = diagnostics_for(shop, fresh=request.GET.get("fresh") == "1")
    return JsonResponse({"shop": shop, **result})
