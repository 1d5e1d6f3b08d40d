"""
WSGI entry point — gunicorn serves `wsgi:app`.

Workers run separately:
    rq worker analysis                  # analysis jobs + SLA ticks
    python scripts/sla_ticker.py        # periodic SLA tick producer
"""
from app import create_app

app = create_app()

if __name__ == '__main__':
    import os
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', 8080)), debug=bool(os.getenv('FLASK_DEBUG')))
