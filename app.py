# Main Flask app
import click
from flask import Flask, jsonify
from flask_bcrypt import Bcrypt
from flask_cors import CORS
from sqlalchemy.exc import IntegrityError

from config import config
from errors import APIError
from logging_config import setup_logger
from models import db, User
from routes import (main_bp, search_bp, follows_bp, profile_bp, posts_bp,
                    likes_bp, comments_bp, comment_likes_bp)

bcrypt = Bcrypt()


def create_app(config_name='default'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    logger = setup_logger('social_media_api', app.config['LOG_LEVEL'])

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    CORS(app, resources={r"/*": {"origins": app.config['CORS_ORIGINS']}})

    # Register blueprints
    app.register_blueprint(main_bp, url_prefix='/')
    app.register_blueprint(search_bp, url_prefix='/search')
    app.register_blueprint(follows_bp, url_prefix='/follows')
    app.register_blueprint(profile_bp, url_prefix='/profile')
    app.register_blueprint(posts_bp, url_prefix='/posts')
    app.register_blueprint(likes_bp, url_prefix='/likes')
    app.register_blueprint(comments_bp, url_prefix='/comments')
    app.register_blueprint(comment_likes_bp, url_prefix='/comment_likes')

    @app.errorhandler(APIError)
    def handle_api_error(error):
        if error.status_code >= 500:
            logger.error(f"Store error: {error.message}")
        else:
            logger.warning(f"Request rejected ({error.status_code}): {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables."""
        db.create_all()
        click.echo('Initialized the database.')

    @app.cli.command('create-user')
    @click.argument('username')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_user_command(username, password):
        """Register a user account."""
        user = User(
            username=username,
            password_hash=bcrypt.generate_password_hash(password).decode('utf-8')
        )
        try:
            db.session.add(user)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise click.ClickException(f"Username {username} already exists")
        logger.info(f"Created user {user.id} ({username})")
        click.echo(f"Created user {user.id}")

    return app
