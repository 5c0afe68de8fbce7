from logdiag.cli import app

if __name__ == "__main__":  # pragma: no cover
    app(prog_name="logdiag")  # pragma: no cover
