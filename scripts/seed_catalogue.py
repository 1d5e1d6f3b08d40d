#!/usr/bin/env python3
"""
Seed the question catalogue and the specialist agent roster.

Reads app/engine/question_catalogue.yaml and upserts every agent and
question. Safe to re-run after editing the YAML.

Usage:
    python scripts/seed_catalogue.py                    # seed from the bundled catalogue
    python scripts/seed_catalogue.py --file other.yaml  # seed from another file
    python scripts/seed_catalogue.py --check            # validate only, write nothing

Requires: DATABASE_URL set (or defaults to sqlite:///local.db) and the
schema migrated (alembic upgrade head).
"""
import sys
import os
import argparse
import logging

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.database import get_session, import_models
from app.engine.catalogue import CATALOGUE_PATH, load_catalogue, seed_catalogue
from app.logging_config import configure_logging

logger = logging.getLogger('scripts.seed_catalogue')


def main():
    parser = argparse.ArgumentParser(description='Seed questions and agents')
    parser.add_argument('--file', default=CATALOGUE_PATH, help='Catalogue YAML path')
    parser.add_argument('--check', action='store_true', help='Validate the catalogue and exit')
    args = parser.parse_args()

    configure_logging(process='seed')
    import_models()

    catalogue = load_catalogue(args.file)
    n_questions = sum(len(v) for v in (catalogue.get('questions') or {}).values())
    print(f"Catalogue {catalogue.get('version', '?')}: "
          f"{len(catalogue.get('agents') or [])} agents, {n_questions} questions")
    if args.check:
        return

    session = get_session()
    try:
        counts = seed_catalogue(session, catalogue)
        session.commit()
    except Exception:
        session.rollback()
        logger.error("Seeding failed", exc_info=True)
        sys.exit(1)
    finally:
        session.close()

    for key, value in counts.items():
        print(f"  {key:<24} {value}")


if __name__ == '__main__':
    main()
