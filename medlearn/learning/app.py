"""
MedLearn Learning System - Router and index setup
Sessions, progress, catalog, reviews, observations, assessments and subscriptions
"""

import logging

from fastapi import FastAPI

from medlearn.learning import assessments, database, observations, reviews, subscriptions
from medlearn.learning.assessment_router import router as assessment_router
from medlearn.learning.catalog_router import faculty_router, module_router, pathology_router
from medlearn.learning.dependencies import get_db_instance
from medlearn.learning.observation_router import router as observation_router
from medlearn.learning.review_router import router as review_router
from medlearn.learning.session_router import router as session_router
from medlearn.learning.session_status_router import router as session_status_router
from medlearn.learning.subscription_router import router as subscription_router

logger = logging.getLogger(__name__)

# ==================== DATABASE INDEXES ====================

async def create_indexes():
    """Create MongoDB indexes for every learning collection"""
    db = get_db_instance()
    await database.create_learning_indexes(db)
    await reviews.create_review_indexes(db)
    await observations.create_observation_indexes(db)
    await assessments.create_assessment_indexes(db)
    await subscriptions.create_subscription_indexes(db)
    logger.info("Learning system indexes created")

# ==================== ROUTER SETUP ====================

def setup_learning_routes(app: FastAPI):
    """Register all learning routers"""
    app.include_router(session_router, prefix="/sessions")
    app.include_router(session_status_router, prefix="/session-status")
    app.include_router(module_router, prefix="/modules")
    app.include_router(pathology_router, prefix="/pathologies")
    app.include_router(faculty_router, prefix="/faculty")
    app.include_router(review_router, prefix="/reviews")
    app.include_router(observation_router, prefix="/observations")
    app.include_router(assessment_router, prefix="/assessments")
    app.include_router(subscription_router, prefix="/subscriptions")
    logger.info("Learning routes registered")

# ==================== STARTUP ====================

async def startup_learning_system():
    await create_indexes()
    logger.info("Learning system initialized")
