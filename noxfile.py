import inspect

import nox

nox.needs_version = ">=2024.4.15"
nox.options.default_venv_backend = "uv|virtualenv"


@nox.session
@nox.parametrize("editable", [True, False])
def tests(session: nox.Session, editable: bool) -> None:
    session.install("-e.[test]" if editable else ".[test]")
    session.run("pytest", "--timeout=30", "tests", *session.posargs)


@nox.session
def public_api(session: nox.Session) -> None:
    session.install(".")
    res = session.run(
        "python",
        "-c",
        inspect.cleandoc("""
        import python_mime

        message = python_mime.Message.create_form({"name": "value"})
        print(python_mime.Message.parse_form(message.render()))
        print(python_mime.__version__)
    """),
        silent=True,
    )
    assert "{'name': 'value'}" in res
