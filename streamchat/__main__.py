from streamchat.main import cli

cli()
