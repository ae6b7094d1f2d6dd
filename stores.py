"""
Relational stores behind the API: follows, likes, posts/comments and profiles.

Every write lands in a single session transaction that is committed once at
the end of the operation, so a failure part way through leaves nothing behind.
"""
from datetime import datetime
from functools import wraps

from sqlalchemy import or_, select
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import NotFoundError, StoreError, ValidationError
from logging_config import log_user_action
from models import User, UserDetail, Post, Comment, Follower, Like, CommentLike

ALLOWED_IMAGE_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'image/gif')

# Dialect specific INSERT constructs that know how to upsert
_UPSERT_INSERTS = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
    'mysql': mysql.insert,
    'mariadb': mysql.insert,
}


def store_operation(func):
    """Roll back and re-raise database failures.

    Constraint violations (a row pointing at a missing user, post or comment)
    are the caller's fault and become ValidationError; anything else is a
    StoreError.
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except IntegrityError as e:
            self.db.session.rollback()
            self.logger.warning(f"{type(self).__name__}.{func.__name__} rejected: {str(e.orig)}")
            raise ValidationError(f"Constraint violated: {str(e.orig)}") from e
        except SQLAlchemyError as e:
            self.db.session.rollback()
            self.logger.error(f"{type(self).__name__}.{func.__name__} failed: {str(e)}")
            raise StoreError(str(e)) from e
    return wrapper


def activate_edge(db, model, flag, **pair):
    """Insert the edge for ``pair`` as active or switch the existing row back on.

    One INSERT .. ON CONFLICT statement keyed by the pair's unique constraint;
    the row id stays the same across off/on cycles.
    """
    dialect = db.engine.dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise StoreError(f"Toggling edges is not supported on {dialect}")

    stmt = insert(model.__table__).values(created_at=datetime.utcnow(), **{flag: True}, **pair)
    if dialect in ('mysql', 'mariadb'):
        stmt = stmt.on_duplicate_key_update({flag: True})
    else:
        stmt = stmt.on_conflict_do_update(index_elements=list(pair), set_={flag: True})
    db.session.execute(stmt)

    return model.query.filter_by(**pair).populate_existing().one()


def deactivate_edge(model, flag, **pair):
    """Switch off the active edge for ``pair``; returns the number of rows touched"""
    return model.query.filter_by(**pair, **{flag: True})\
        .update({flag: False}, synchronize_session=False)


class RelationshipStore:
    """Directed follow edges between users"""

    def __init__(self, db, logger):
        self.db = db
        self.logger = logger

    @store_operation
    def list_non_followed(self, user_id):
        """Users with a profile that ``user_id`` is not following yet"""
        followed = select(Follower.following_user_id).where(
            Follower.user_id == user_id,
            Follower.following.is_(True)
        )
        rows = self.db.session.query(User.id)\
            .join(UserDetail, UserDetail.user_id == User.id)\
            .filter(User.id != user_id, ~User.id.in_(followed))\
            .order_by(User.id)\
            .all()

        if not rows:
            raise NotFoundError("You are already following all users")
        return [{"id": row.id} for row in rows]

    @store_operation
    def count_relationships(self, user_id):
        following = Follower.query.filter_by(user_id=user_id, following=True).count()
        follower = Follower.query.filter_by(following_user_id=user_id, following=True).count()
        return {"following": following, "follower": follower}

    @store_operation
    def get_relationship_status(self, user_id, target_id):
        """The ``following`` flag for the pair, or None if there never was an edge"""
        edge = Follower.query.filter_by(user_id=user_id, following_user_id=target_id).first()
        return edge.following if edge else None

    @store_operation
    def follow(self, user_id, target_id):
        if user_id == target_id:
            raise ValidationError("You cannot follow yourself")

        edge = activate_edge(self.db, Follower, 'following',
                             user_id=user_id, following_user_id=target_id)
        self.db.session.commit()

        log_user_action(self.logger, user_id, "follow", f"following_user_id={target_id}")
        return edge

    @store_operation
    def unfollow(self, user_id, target_id):
        changed = deactivate_edge(Follower, 'following',
                                  user_id=user_id, following_user_id=target_id)
        self.db.session.commit()

        if changed:
            log_user_action(self.logger, user_id, "unfollow", f"following_user_id={target_id}")
        return changed


class EngagementStore:
    """Like edges from users to a subject; used for both posts and comments"""

    def __init__(self, db, logger, model, subject_field):
        self.db = db
        self.logger = logger
        self.model = model
        self.subject_field = subject_field

    @store_operation
    def like(self, user_id, subject_id):
        edge = activate_edge(self.db, self.model, 'active',
                             user_id=user_id, **{self.subject_field: subject_id})
        self.db.session.commit()

        log_user_action(self.logger, user_id, f"like {self.model.__tablename__}",
                        f"{self.subject_field}={subject_id}")
        return edge

    @store_operation
    def unlike(self, user_id, subject_id):
        changed = deactivate_edge(self.model, 'active',
                                  user_id=user_id, **{self.subject_field: subject_id})
        self.db.session.commit()

        if changed:
            log_user_action(self.logger, user_id, f"unlike {self.model.__tablename__}",
                            f"{self.subject_field}={subject_id}")
        return changed

    @store_operation
    def list_likers(self, subject_id):
        model = self.model
        rows = self.db.session.query(
            User.username,
            User.id.label('user_id'),
            model.id.label(f"{model.__tablename__}_id")
        ).select_from(model)\
         .join(User, model.user_id == User.id)\
         .filter(getattr(model, self.subject_field) == subject_id, model.active.is_(True))\
         .order_by(model.id)\
         .all()

        return [dict(row._mapping) for row in rows]


class ContentStore:
    """Posts and their comments"""

    def __init__(self, db, logger):
        self.db = db
        self.logger = logger

    def _require_user(self, user_id):
        if user_id is None or self.db.session.get(User, user_id) is None:
            raise ValidationError("User does not exist")

    def _require_post(self, post_id):
        if post_id is None or self.db.session.get(Post, post_id) is None:
            raise ValidationError("Post does not exist")

    # Posts

    @store_operation
    def get_post(self, post_id):
        post = self.db.session.get(Post, post_id)
        if post is None:
            raise NotFoundError("No post found")
        return post

    @store_operation
    def list_posts_by_user(self, user_id):
        posts = Post.query.filter_by(user_id=user_id)\
            .order_by(Post.created_at.desc(), Post.id.desc())\
            .all()
        if not posts:
            raise NotFoundError("No posts found for this user")
        return posts

    @store_operation
    def search_posts(self, keyword):
        posts = Post.query.filter(Post.content.like(f"%{keyword}%"))\
            .order_by(Post.created_at.desc(), Post.id.desc())\
            .all()
        if not posts:
            raise NotFoundError("No post found")
        return posts

    @store_operation
    def create_post(self, user_id, title, content):
        self._require_user(user_id)

        post = Post(
            title=title,
            content=content,
            user_id=user_id,
            created_at=datetime.utcnow()
        )
        self.db.session.add(post)
        self.db.session.commit()

        log_user_action(self.logger, user_id, "create post", f"post_id={post.id}")
        return post

    @store_operation
    def update_post(self, post_id, title, content):
        post = self.db.session.get(Post, post_id)
        if post is None:
            raise NotFoundError("No post found")

        post.title = title
        post.content = content
        self.db.session.commit()
        return post

    @store_operation
    def delete_post(self, post_id):
        """Delete a post together with its likes, its comments and their likes"""
        comment_ids = select(Comment.id).where(Comment.post_id == post_id)

        Like.query.filter_by(post_id=post_id).delete(synchronize_session=False)
        CommentLike.query.filter(CommentLike.comment_id.in_(comment_ids))\
            .delete(synchronize_session=False)
        Comment.query.filter_by(post_id=post_id).delete(synchronize_session=False)
        deleted = Post.query.filter_by(id=post_id).delete(synchronize_session=False)
        self.db.session.commit()

        if deleted:
            self.logger.info(f"Deleted post {post_id} and its dependents")
        return deleted

    @store_operation
    def set_views(self, post_id, views):
        """Overwrite the view counter with an absolute value"""
        updated = Post.query.filter_by(id=post_id)\
            .update({Post.views: views}, synchronize_session=False)
        if not updated:
            raise NotFoundError("No post found")
        self.db.session.commit()
        return self.db.session.get(Post, post_id)

    @store_operation
    def increment_views(self, post_id):
        """Add one view with views = views + 1 in the database"""
        updated = Post.query.filter_by(id=post_id)\
            .update({Post.views: Post.views + 1}, synchronize_session=False)
        if not updated:
            raise NotFoundError("No post found")
        self.db.session.commit()
        return self.db.session.get(Post, post_id)

    # Comments

    @store_operation
    def list_comments_by_post(self, post_id):
        # Only authors who have set up a profile are shown
        return Comment.query\
            .join(UserDetail, UserDetail.user_id == Comment.user_id)\
            .filter(Comment.post_id == post_id)\
            .order_by(Comment.created_at.desc(), Comment.id.desc())\
            .all()

    @store_operation
    def create_comment(self, user_id, post_id, content):
        self._require_user(user_id)
        self._require_post(post_id)

        comment = Comment(
            user_id=user_id,
            post_id=post_id,
            content=content,
            created_at=datetime.utcnow()
        )
        self.db.session.add(comment)
        self.db.session.commit()

        log_user_action(self.logger, user_id, "comment", f"post_id={post_id}")
        return comment

    @store_operation
    def update_comment(self, comment_id, user_id, post_id, content):
        self._require_user(user_id)
        self._require_post(post_id)

        comment = Comment.query.filter_by(id=comment_id, user_id=user_id, post_id=post_id).first()
        if comment is None:
            raise NotFoundError("No matching comment found")

        comment.content = content
        self.db.session.commit()
        return comment

    @store_operation
    def delete_comment(self, comment_id):
        CommentLike.query.filter_by(comment_id=comment_id).delete(synchronize_session=False)
        deleted = Comment.query.filter_by(id=comment_id).delete(synchronize_session=False)
        self.db.session.commit()
        return deleted


class ProfileStore:
    """User details: display username, name, bio and images"""

    def __init__(self, db, logger):
        self.db = db
        self.logger = logger

    def _username_taken(self, user_id, username):
        """True when ``username`` belongs to a different user's details"""
        owner = UserDetail.query.filter_by(user_name=username).first()
        return owner is not None and owner.user_id != user_id

    @store_operation
    def get_profile(self, user_id):
        user = self.db.session.get(User, user_id)
        if user is None:
            raise NotFoundError("No user found")

        detail = UserDetail.query.filter_by(user_id=user_id).first()
        if detail is None:
            return {"user_id": user.id, "email": user.username}

        return {
            "user_id": detail.user_id,
            "username": detail.user_name,
            "name": detail.name,
            "bio": detail.bio,
            "profile_image": detail.profile_image_path,
            "banner_image": detail.banner_image_path
        }

    @store_operation
    def search_users(self, keyword):
        pattern = f"%{keyword}%"
        rows = self.db.session.query(User.id)\
            .join(UserDetail, UserDetail.user_id == User.id)\
            .filter(or_(UserDetail.user_name.like(pattern), UserDetail.name.like(pattern)))\
            .order_by(User.id)\
            .all()
        if not rows:
            raise NotFoundError("No user found")
        return [{"id": row.id} for row in rows]

    @store_operation
    def save_profile(self, user_id, username, name, bio=None,
                     profile_image=None, banner_image=None, uploads=None):
        """Create or update the user's details.

        Images are only replaced, never cleared: a save without a new file keeps
        whatever was stored before.
        """
        for image in (profile_image, banner_image):
            if image is not None and image.mimetype not in ALLOWED_IMAGE_TYPES:
                raise ValidationError(
                    "Invalid file format. Please upload valid image files (jpg, jpeg, png, gif)"
                )

        if self.db.session.get(User, user_id) is None:
            raise ValidationError("User does not exist")

        if self._username_taken(user_id, username):
            raise ValidationError("Username already exists")

        detail = UserDetail.query.filter_by(user_id=user_id).first()
        if detail is None:
            detail = UserDetail(user_id=user_id)
            self.db.session.add(detail)

        detail.user_name = username
        detail.name = name
        detail.bio = bio or None
        if profile_image is not None:
            detail.profile_image, detail.profile_image_path = uploads.save(profile_image)
        if banner_image is not None:
            detail.banner_image, detail.banner_image_path = uploads.save(banner_image)

        try:
            self.db.session.commit()
        except IntegrityError:
            # Another request claimed the username between the check and the commit
            self.db.session.rollback()
            if self._username_taken(user_id, username):
                raise ValidationError("Username already exists")
            raise

        log_user_action(self.logger, user_id, "save profile", f"username={username}")
        return detail
