from sparkwrap import app

app(prog_name="sparkwrap")
