"""Script entry point: ``python -m lockmint`` or ``lockmint-server``."""

import asyncio
import logging
import sys

from dotenv import load_dotenv

from lockmint.lib.util import make_logger
from lockmint.server.controller import Controller, StartupError
from lockmint.server.env import Env, EnvError


def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO,
                        format='%(levelname)s:%(name)s:%(message)s')
    logger = make_logger('lockmint')
    try:
        env = Env()
        logging.getLogger().setLevel(env.log_level)
        asyncio.run(Controller(env).run())
    except (EnvError, StartupError) as e:
        logger.error(f'LockMint server terminated abnormally: {e}')
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info('LockMint server interrupted')
    except Exception:
        logger.exception('LockMint server terminated abnormally')
        sys.exit(1)
    else:
        logger.info('LockMint server terminated normally')


if __name__ == '__main__':
    main()
