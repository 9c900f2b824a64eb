from barbercore import create_app

app = create_app()
