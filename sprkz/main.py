# -*- coding: utf-8 -*-
from sprkz.factory import create_app

# gunicorn entrypoint: gunicorn sprkz.main:app
app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000)
