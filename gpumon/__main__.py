from gpumon.cli import app

# `python -m gpumon run`
app(prog_name="gpumon")
