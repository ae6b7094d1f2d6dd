# Routes for handling requests
from flask import Blueprint, current_app, jsonify, request, send_from_directory

from errors import ValidationError
from logging_config import setup_logger
from models import db, Like, CommentLike
from storage import UploadStore
from stores import ContentStore, EngagementStore, ProfileStore, RelationshipStore

logger = setup_logger('social_media_api')

follows = RelationshipStore(db, logger)
post_likes = EngagementStore(db, logger, Like, 'post_id')
comment_likes = EngagementStore(db, logger, CommentLike, 'comment_id')
content = ContentStore(db, logger)
profiles = ProfileStore(db, logger)

# Create blueprints for different route categories
main_bp = Blueprint('main', __name__)
search_bp = Blueprint('search', __name__)
follows_bp = Blueprint('follows', __name__)
profile_bp = Blueprint('profile', __name__)
posts_bp = Blueprint('posts', __name__)
likes_bp = Blueprint('likes', __name__)
comments_bp = Blueprint('comments', __name__)
comment_likes_bp = Blueprint('comment_likes', __name__)


def _json_body():
    """The JSON body as a dict; an absent body counts as empty"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Missing required fields")
    return data


def _json_fields(*fields):
    """Pull required fields out of the JSON body, coercing ``*_id`` fields to int"""
    data = _json_body()
    if not all(data.get(key) is not None for key in fields):
        raise ValidationError("Missing required fields")

    values = []
    for key in fields:
        value = data[key]
        if key.endswith('_id'):
            value = _as_id(key, value)
        values.append(value)
    return values


def _as_id(key, value):
    # bool is an int subclass and floats would be truncated silently
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"{key} must be an integer")
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


@main_bp.route('/', methods=['GET'])
def welcome():
    """Welcome message for the API"""
    return jsonify({"message": "Welcome to the twitter API!"}), 200


@main_bp.route('/images/<path:filename>', methods=['GET'])
def uploaded_image(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


# Search

@search_bp.route('/users/<keyword>', methods=['GET'])
def search_users(keyword):
    return jsonify(profiles.search_users(keyword)), 200


@search_bp.route('/posts/<keyword>', methods=['GET'])
def search_posts(keyword):
    return jsonify([post.to_dict() for post in content.search_posts(keyword)]), 200


# Follows

@follows_bp.route('/<int:user_id>', methods=['GET'])
def not_following(user_id):
    """Users the given user is not following yet"""
    return jsonify(follows.list_non_followed(user_id)), 200


@follows_bp.route('/count/<int:user_id>', methods=['GET'])
def follow_counts(user_id):
    return jsonify(follows.count_relationships(user_id)), 200


@follows_bp.route('/<int:user_id>/<int:following_user_id>', methods=['GET'])
def follow_status(user_id, following_user_id):
    following = follows.get_relationship_status(user_id, following_user_id)
    # No edge at all means the user never followed
    return jsonify({"following": bool(following)}), 200


@follows_bp.route('', methods=['POST'])
def follow_user():
    user_id, following_user_id = _json_fields('user_id', 'following_user_id')
    edge = follows.follow(user_id, following_user_id)
    return jsonify(edge.to_dict()), 200


@follows_bp.route('/<int:user_id>/<int:following_user_id>', methods=['PUT'])
def unfollow_user(user_id, following_user_id):
    follows.unfollow(user_id, following_user_id)
    return jsonify({"message": "Successfully unfollowed"}), 200


# Profiles

@profile_bp.route('/<int:user_id>', methods=['GET'])
def get_profile(user_id):
    return jsonify(profiles.get_profile(user_id)), 200


@profile_bp.route('/<int:user_id>', methods=['POST'])
def save_profile(user_id):
    """Create or update profile details from a multipart form"""
    username = request.form.get('username')
    name = request.form.get('name')
    if not username or not name:
        raise ValidationError("Missing required fields")

    detail = profiles.save_profile(
        user_id,
        username,
        name,
        bio=request.form.get('bio'),
        profile_image=request.files.get('profileImage') or None,
        banner_image=request.files.get('bannerImage') or None,
        uploads=UploadStore(current_app.config['UPLOAD_FOLDER'])
    )
    return jsonify(detail.to_dict()), 200


# Posts

@posts_bp.route('/<int:post_id>', methods=['GET'])
def get_post(post_id):
    return jsonify(content.get_post(post_id).to_dict()), 200


@posts_bp.route('/user/<int:user_id>', methods=['GET'])
def get_user_posts(user_id):
    posts = content.list_posts_by_user(user_id)
    return jsonify([post.to_dict() for post in posts]), 200


@posts_bp.route('', methods=['POST'])
def create_post():
    data = _json_body()
    user_id, post_content = _json_fields('user_id', 'content')
    post = content.create_post(user_id, data.get('title'), post_content)
    return jsonify(post.to_dict()), 200


@posts_bp.route('/<int:post_id>', methods=['PUT'])
def update_post(post_id):
    data = _json_body()
    (post_content,) = _json_fields('content')
    post = content.update_post(post_id, data.get('title'), post_content)
    return jsonify(post.to_dict()), 200


@posts_bp.route('/<int:post_id>', methods=['DELETE'])
def delete_post(post_id):
    content.delete_post(post_id)
    return jsonify({"message": "Post deleted successfully"}), 200


@posts_bp.route('/views/<int:post_id>', methods=['PUT'])
def update_views(post_id):
    """Set the view count when one is given, otherwise count one more view"""
    data = _json_body()
    if data.get('views') is not None:
        try:
            views = int(data['views'])
        except (TypeError, ValueError):
            raise ValidationError("views must be a number")
        post = content.set_views(post_id, views)
    else:
        post = content.increment_views(post_id)
    return jsonify(post.to_dict()), 200


# Post likes

@likes_bp.route('', methods=['POST'])
def like_post():
    user_id, post_id = _json_fields('user_id', 'post_id')
    return jsonify(post_likes.like(user_id, post_id).to_dict()), 200


@likes_bp.route('/<int:user_id>/<int:post_id>', methods=['PUT'])
def unlike_post(user_id, post_id):
    post_likes.unlike(user_id, post_id)
    return jsonify({"message": "The like has been removed successfully!"}), 200


@likes_bp.route('/post/<int:post_id>', methods=['GET'])
def get_post_likes(post_id):
    return jsonify(post_likes.list_likers(post_id)), 200


# Comments

@comments_bp.route('', methods=['POST'])
def add_comment():
    user_id, post_id, comment_content = _json_fields('user_id', 'post_id', 'content')
    comment = content.create_comment(user_id, post_id, comment_content)
    return jsonify(comment.to_dict()), 200


@comments_bp.route('/post/<int:post_id>', methods=['GET'])
def get_post_comments(post_id):
    comments = content.list_comments_by_post(post_id)
    return jsonify([comment.to_dict() for comment in comments]), 200


@comments_bp.route('/<int:comment_id>', methods=['PUT'])
def update_comment(comment_id):
    user_id, post_id, comment_content = _json_fields('user_id', 'post_id', 'content')
    comment = content.update_comment(comment_id, user_id, post_id, comment_content)
    return jsonify(comment.to_dict()), 200


@comments_bp.route('/<int:comment_id>', methods=['DELETE'])
def delete_comment(comment_id):
    content.delete_comment(comment_id)
    return jsonify({"message": "Comment deleted successfully"}), 200


# Comment likes

@comment_likes_bp.route('', methods=['POST'])
def like_comment():
    user_id, comment_id = _json_fields('user_id', 'comment_id')
    return jsonify(comment_likes.like(user_id, comment_id).to_dict()), 200


@comment_likes_bp.route('/<int:user_id>/<int:comment_id>', methods=['PUT'])
def unlike_comment(user_id, comment_id):
    comment_likes.unlike(user_id, comment_id)
    return jsonify({"message": "Like deleted successfully"}), 200


@comment_likes_bp.route('/comment/<int:comment_id>', methods=['GET'])
def get_comment_likes(comment_id):
    return jsonify(comment_likes.list_likers(comment_id)), 200
