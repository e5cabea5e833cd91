import re
from pathlib import Path

from ogwini_portal.app import create_app


TEMPLATE_ROOT = Path(__file__).resolve().parent / "templates"
_URL_FOR_RE = re.compile(r"url_for\(\s*['\"]([a-z_]+\.[a-z_]+)['\"]")


def template_references(tmpl_root: Path = TEMPLATE_ROOT) -> dict[str, set[str]]:
    refs: dict[str, set[str]] = {}
    for p in tmpl_root.rglob("*.html"):
        txt = p.read_text(encoding="utf-8", errors="ignore")
        for m in _URL_FOR_RE.finditer(txt):
            refs.setdefault(m.group(1), set()).add(str(p.relative_to(tmpl_root)))
    return refs


def missing_endpoints(app, tmpl_root: Path = TEMPLATE_ROOT) -> dict[str, set[str]]:
    endpoints = {r.endpoint for r in app.url_map.iter_rules()}
    refs = template_references(tmpl_root)
    return {ep: files for ep, files in refs.items() if ep not in endpoints}


def main() -> int:
    app = create_app()
    refs = template_references()
    missing = missing_endpoints(app)

    print(f"Endpoints referenced in templates: {len(refs)}")
    print(f"Endpoints registered in app: {len({r.endpoint for r in app.url_map.iter_rules()})}")

    print(f"\nMissing endpoints (referenced but not registered): {len(missing)}")
    for ep in sorted(missing):
        print(f"- {ep} <= {', '.join(sorted(missing[ep]))}")

    return 0 if not missing else 1


if __name__ == "__main__":
    raise SystemExit(main())
