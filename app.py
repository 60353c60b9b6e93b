# Portfolio backend - development entry point
# Production: gunicorn "portfolio_backend:create_app('production')"

import os

from portfolio_backend import create_app

app = create_app(os.environ.get('FLASK_CONFIG', 'development'))

if __name__ == '__main__':
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0',
            port=int(os.environ.get('PORT', 5000)))
