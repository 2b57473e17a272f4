import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from medlearn import config
from medlearn.errors import MedLearnError, medlearn_error_handler, storage_error_handler
from medlearn.learning.app import setup_learning_routes, startup_learning_system

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="MedLearn Content Engine")

# MongoDB Configuration
client = AsyncIOMotorClient(config.MONGO_URL)
db = client[config.MONGO_DB_NAME]


@app.on_event("startup")
async def startup_event():
    await startup_learning_system()


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(MedLearnError, medlearn_error_handler)
app.add_exception_handler(PyMongoError, storage_error_handler)


# ==================== ROUTER REGISTRATION ====================
setup_learning_routes(app)
# ============================================================


@app.get("/health")
def health():
    return {"status": "ok"}
