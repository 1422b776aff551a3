# tests/modules/campaigns/test_templates.py
from smartbroker.modules.campaigns.templates import render_template


def test_variables_then_contact_fields():
    rendered = render_template(
        "Olá {{contact.name}}, conheça o {{empreendimento}} por {{preco}}!",
        {"empreendimento": "Residencial Aurora", "preco": "R$ 450 mil"},
        {"name": "Ana", "email": "ana@example.com", "phone": "5511999990000"},
    )
    assert rendered == "Olá Ana, conheça o Residencial Aurora por R$ 450 mil!"


def test_missing_contact_fields_use_fallbacks():
    rendered = render_template("Oi {{contact.name}} <{{contact.email}}> {{contact.phone}}", {}, {"name": None})
    assert rendered == "Oi Cliente <> "


def test_accepts_objects_and_leaves_unknown_placeholders():
    class Lead:
        name = "Bruno"
        email = None
        phone = "5511988880000"

    rendered = render_template("{{contact.name}} / {{contact.phone}} / {{desconhecido}}", None, Lead())
    assert rendered == "Bruno / 5511988880000 / {{desconhecido}}"


def test_rendering_is_idempotent():
    template = "Olá {{contact.name}}, veja {{link}}"
    once = render_template(template, {"link": "https://example.com/imovel/1"}, {"name": "Carla"})
    assert render_template(once, {"link": "outro"}, {"name": "Outra"}) == once
