# smartbroker/modules/campaigns/templates.py
from typing import Any, Mapping, Optional


def render_template(template: str, variables: Optional[Mapping[str, Any]], contact: Any) -> str:
    """Substitui ``{{chave}}`` pelas variáveis da campanha e depois os campos do contato.

    ``contact`` pode ser um modelo ou dict com ``name``, ``email`` e ``phone``.
    Sem efeitos colaterais: renderizar de novo o resultado não muda nada.
    """
    rendered = template or ""
    for key, value in (variables or {}).items():
        rendered = rendered.replace("{{" + str(key) + "}}", "" if value is None else str(value))

    def _field(name: str) -> Optional[str]:
        if isinstance(contact, Mapping):
            return contact.get(name)
        return getattr(contact, name, None)

    rendered = rendered.replace("{{contact.name}}", _field("name") or "Cliente")
    rendered = rendered.replace("{{contact.email}}", _field("email") or "")
    rendered = rendered.replace("{{contact.phone}}", _field("phone") or "")
    return rendered
