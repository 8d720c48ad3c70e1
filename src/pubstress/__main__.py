from pubstress.cli import app

app()
