from pgflare.cli import app

app(prog_name="flare")
