import logging
from fastapi import FastAPI, HTTPException
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field, ValidationError
import uvicorn

from analyzer import analyze, analyze_site
from competitors import find_competitor_urls
from config import AuditSettings
from models import AnalysisOptions

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

app = FastAPI(title="SEO Audit API")


class AnalyzeRequest(BaseModel):
    url: str
    target_keyword: str | None = None
    verify_links: bool = True


class CrawlRequest(BaseModel):
    url: str
    max_pages: int | None = Field(None, ge=1, le=500)
    verify_links: bool = False


class CompetitorRequest(BaseModel):
    keyword: str
    location: str | None = None
    exclude_url: str | None = None


def load_settings(**overrides) -> AuditSettings:
    try:
        return AuditSettings.from_env(**{k: v for k, v in overrides.items() if v is not None})
    except ValidationError as e:
        logging.error(f"Invalid audit configuration: {e}")
        raise HTTPException(status_code=500, detail="Server audit configuration is invalid.")


@app.post("/analyze")
async def analyze_page(req: AnalyzeRequest):
    settings = load_settings()
    options = AnalysisOptions(forced_primary_keyword=req.target_keyword, verify_links=req.verify_links)
    result = await run_in_threadpool(analyze, req.url, options, settings)
    return result.to_wire()


@app.post("/crawl")
async def crawl(req: CrawlRequest):
    settings = load_settings(max_pages=req.max_pages)
    result = await run_in_threadpool(analyze_site, req.url, settings, None, req.verify_links)
    return result.to_wire()


@app.post("/competitors")
async def competitors(req: CompetitorRequest):
    return await run_in_threadpool(find_competitor_urls, req.keyword, req.location, req.exclude_url)


@app.get("/")
def root():
    return {"message": "SEO Audit API. Use POST /analyze for one page, POST /crawl for a site, POST /competitors for competitor URLs."}

#directly running the main.py file
if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
