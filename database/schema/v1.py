"""Schema v1 - Initial marketplace schema.

This version includes tables for:
- Users and genres
- Tracks and their moderation requests
- Reviews
- Cart, orders and library ownership
- Playlists
- Notifications and the activity log
"""

from database.enums import (
    UserRole, TrackStatus, ModerationStatus, ModerationType, check_in
)

TOUCH_UPDATED_AT = '''
    BEGIN
        NEW.updated_at = now();
        RETURN NEW;
    END;
'''

def _touch_trigger(table: str) -> dict:
    return {
        'name': f'trg_{table}_updated_at',
        'function_name': 'touch_updated_at',
        'function_body': TOUCH_UPDATED_AT,
        'table': table,
        'timing': 'BEFORE',
        'event': 'UPDATE'
    }

schema = {
    'version': 1,
    'extensions': ['pgcrypto'],
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'email', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'username', 'type': 'TEXT', 'nullable': False},
                {'name': 'password_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'USER'"},
                {'name': 'avatar_url', 'type': 'TEXT'},
                {'name': 'is_blocked', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [check_in('role', UserRole)],
            'indexes': [
                {'name': 'idx_users_role', 'columns': ['role']}
            ]
        },
        {
            'name': 'genres',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        },
        {
            'name': 'tracks',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'author_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'genre_id', 'type': 'UUID', 'nullable': False},
                {'name': 'price', 'type': 'NUMERIC(10,2)', 'nullable': False},
                {'name': 'media_url', 'type': 'TEXT', 'nullable': False},
                {'name': 'cover_url', 'type': 'TEXT'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'PENDING'"},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'published_at', 'type': 'TIMESTAMPTZ'}
            ],
            'checks': [check_in('status', TrackStatus), 'price >= 0'],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['genre_id'], 'references': 'genres(id)'}
            ],
            'indexes': [
                {'name': 'idx_tracks_seller', 'columns': ['seller_id']},
                {'name': 'idx_tracks_genre', 'columns': ['genre_id']},
                {'name': 'idx_tracks_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'moderation_requests',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'type', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'PENDING'"},
                {'name': 'track_id', 'type': 'UUID'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'payload', 'type': 'JSONB', 'nullable': False, 'default': "'{}'::jsonb"},
                {'name': 'moderator_id', 'type': 'UUID'},
                {'name': 'note', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'decided_at', 'type': 'TIMESTAMPTZ'}
            ],
            'checks': [
                check_in('type', ModerationType),
                check_in('status', ModerationStatus)
            ],
            'foreign_keys': [
                {'columns': ['track_id'], 'references': 'tracks(id)'},
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['moderator_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_moderation_status', 'columns': ['status', 'created_at']},
                {'name': 'idx_moderation_track', 'columns': ['track_id']}
            ]
        },
        {
            'name': 'reviews',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'track_id', 'type': 'UUID', 'nullable': False},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'rating', 'type': 'INT4', 'nullable': False},
                {'name': 'comment', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'PENDING'"},
                {'name': 'moderation_note', 'type': 'TEXT'},
                {'name': 'moderated_by_id', 'type': 'UUID'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [check_in('status', ModerationStatus), 'rating BETWEEN 1 AND 5'],
            'foreign_keys': [
                {'columns': ['track_id'], 'references': 'tracks(id)'},
                {'columns': ['user_id'], 'references': 'users(id)'},
                {'columns': ['moderated_by_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_reviews_track_user', 'columns': ['track_id', 'user_id'], 'unique': True},
                {'name': 'idx_reviews_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'total', 'type': 'NUMERIC(12,2)', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_orders_user', 'columns': ['user_id']}
            ]
        },
        {
            'name': 'order_items',
            'columns': [
                {'name': 'order_id', 'type': 'UUID'},
                {'name': 'track_id', 'type': 'UUID'},
                {'name': 'price', 'type': 'NUMERIC(10,2)', 'nullable': False}
            ],
            'primary_key': ['order_id', 'track_id'],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)'},
                {'columns': ['track_id'], 'references': 'tracks(id)'}
            ],
            'indexes': [
                {'name': 'idx_order_items_track', 'columns': ['track_id']}
            ]
        },
        {
            'name': 'cart_items',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'track_id', 'type': 'UUID', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'},
                {'columns': ['track_id'], 'references': 'tracks(id)'}
            ],
            'indexes': [
                {'name': 'idx_cart_user_track', 'columns': ['user_id', 'track_id'], 'unique': True}
            ]
        },
        {
            'name': 'library_items',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'track_id', 'type': 'UUID', 'nullable': False},
                {'name': 'source_order_id', 'type': 'UUID'},
                {'name': 'purchased_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'},
                {'columns': ['track_id'], 'references': 'tracks(id)'},
                {'columns': ['source_order_id'], 'references': 'orders(id)'}
            ],
            'indexes': [
                {'name': 'idx_library_user_track', 'columns': ['user_id', 'track_id'], 'unique': True}
            ]
        },
        {
            'name': 'playlists',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_playlists_user', 'columns': ['user_id']}
            ]
        },
        {
            'name': 'playlist_tracks',
            'columns': [
                {'name': 'playlist_id', 'type': 'UUID'},
                {'name': 'track_id', 'type': 'UUID'},
                {'name': 'added_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'primary_key': ['playlist_id', 'track_id'],
            'foreign_keys': [
                {'columns': ['playlist_id'], 'references': 'playlists(id)', 'on_delete': 'CASCADE'},
                {'columns': ['track_id'], 'references': 'tracks(id)'}
            ]
        },
        {
            'name': 'notifications',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'metadata', 'type': 'JSONB'},
                {'name': 'is_read', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_notifications_user', 'columns': ['user_id', 'created_at']},
                {'name': 'idx_notifications_unread', 'columns': ['user_id'], 'where': 'NOT is_read'}
            ]
        },
        {
            'name': 'activity_logs',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'action', 'type': 'TEXT', 'nullable': False},
                {'name': 'entity_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'entity_id', 'type': 'TEXT'},
                {'name': 'user_id', 'type': 'UUID'},
                {'name': 'details', 'type': 'JSONB'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_activity_created', 'columns': ['created_at']}
            ]
        }
    ],
    'triggers': [
        _touch_trigger('users'),
        _touch_trigger('tracks'),
        _touch_trigger('moderation_requests'),
        _touch_trigger('reviews'),
        _touch_trigger('playlists')
    ]
}
