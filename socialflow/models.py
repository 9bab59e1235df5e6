# Copyright (c) 2026 Mohammed Hassan. All rights reserved.
# Proprietary and confidential. Unauthorized copying, modification, distribution, or use is prohibited.

from sqlalchemy import Column, Integer, String, Text, Boolean, ForeignKey, Index, UniqueConstraint, text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# SQLite stores timestamps as ISO text, the workflow engine reads them that way
NOW = text("(datetime('now'))")

class Client(Base):
    __tablename__ = "clients"
    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False, default="restaurant")
    language = Column(String, nullable=False, default="en")
    timezone = Column(String, nullable=False, default="Europe/Berlin")
    is_active = Column(Boolean, nullable=False, default=True)

    instagram_account_id = Column(String, nullable=True)
    tiktok_account_id = Column(String, nullable=True)
    late_profile_id = Column(String, nullable=True)

    feed_time = Column(String, nullable=True)
    story_time = Column(String, nullable=True)
    photo_time = Column(String, nullable=True)
    video_time = Column(String, nullable=True)

    brand_voice = Column(Text, nullable=True)
    brand_target_audience = Column(Text, nullable=True)
    brand_description = Column(Text, nullable=True)
    hashtags = Column(Text, nullable=True)

    created_at = Column(String, server_default=NOW)
    updated_at = Column(String, server_default=NOW)

    batches = relationship("Batch", back_populates="client")
    accounts = relationship("Account", back_populates="client")

class Batch(Base):
    __tablename__ = "batches"
    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    status = Column(String, nullable=False, default="PENDING")
    has_ready = Column(Boolean, default=False)
    has_config = Column(Boolean, default=False)
    schedule_config = Column(Text, nullable=True)
    created_at = Column(String, server_default=NOW)
    updated_at = Column(String, server_default=NOW)

    client = relationship("Client", back_populates="batches")
    items = relationship("ContentItem", back_populates="batch")

    __table_args__ = (UniqueConstraint("client_id", "slug", name="uq_batch_client_slug"),)

class ContentItem(Base):
    __tablename__ = "content_items"
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(String, nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    batch_id = Column(Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False, index=True)

    media_type = Column(String, nullable=False, default="photo")
    file = Column(String, nullable=True)
    file_hash = Column(String, nullable=True)
    media_url = Column(Text, nullable=True)

    image_description = Column(Text, nullable=True)
    description_generated_at = Column(String, nullable=True)

    caption_ig = Column(Text, nullable=True)
    caption_tt = Column(Text, nullable=True)
    caption_override = Column(Text, nullable=True)
    hashtags_final = Column(Text, nullable=True)

    platforms = Column(String, nullable=False, default="ig,tt")
    scheduled_date = Column(String, nullable=True)
    scheduled_time = Column(String, nullable=True)
    schedule_at = Column(String, nullable=True)
    slot = Column(String, nullable=False, default="feed")

    status = Column(String, nullable=False, default="PENDING", index=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0)
    late_post_id = Column(String, nullable=True)

    created_at = Column(String, server_default=NOW)
    updated_at = Column(String, server_default=NOW)

    batch = relationship("Batch", back_populates="items")

class Account(Base):
    __tablename__ = "accounts"
    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=True, index=True)
    platform = Column(String, nullable=False)
    late_account_id = Column(String, nullable=False, unique=True)
    username = Column(String, nullable=False)
    display_name = Column(String, nullable=True)
    late_profile_id = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    token_expires_at = Column(String, nullable=True)
    synced_at = Column(String, nullable=True)

    client = relationship("Client", back_populates="accounts")

class AIConversation(Base):
    __tablename__ = "ai_conversations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    content_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False, index=True)
    session_id = Column(String, nullable=True)
    round = Column(Integer, default=1)
    role = Column(String, nullable=False)
    content = Column(Text, nullable=True)
    created_at = Column(String, server_default=NOW)

class AgentInstruction(Base):
    __tablename__ = "agent_instructions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    agent_type = Column(Text, nullable=False)
    scope = Column(Text, nullable=False) # system, client, batch
    scope_id = Column(Integer, nullable=True)
    instruction_key = Column(Text, nullable=False)
    instruction_value = Column(Text, nullable=False)
    is_active = Column(Integer, default=1)
    created_at = Column(Text, server_default=NOW)
    updated_at = Column(Text, server_default=NOW)

    __table_args__ = (
        UniqueConstraint("agent_type", "scope", "scope_id", "instruction_key"),
        Index("idx_agent_instructions_lookup", "agent_type", "scope", "scope_id", "is_active"),
    )
