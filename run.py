from mangareader_app import create_app

app = create_app()

if __name__ == '__main__':
    # Host/port/debug come from FLASK_HOST, FLASK_PORT and FLASK_DEBUG
    host = app.config.get('HOST', '127.0.0.1')
    port = app.config.get('PORT', 5000)
    debug = app.config.get('DEBUG', False)

    app.run(host=host, port=port, debug=debug)
