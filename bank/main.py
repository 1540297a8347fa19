from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from bank.accounts import StripeAccountService
from bank.database import Base, engine
from bank.errors import BankError
from bank.log import setup_logging
from bank.routes import router
from bank.workflows import BankContext

setup_logging()

app = FastAPI(title="Bank Payments Service")

app.include_router(router)

Base.metadata.create_all(bind=engine)

app.state.bank = BankContext(accounts=StripeAccountService())


@app.exception_handler(BankError)
async def bank_error_handler(request: Request, exc: BankError):
    if exc.code == 204:
        return Response(status_code=204)
    return JSONResponse(status_code=exc.code, content={"error": exc.message})
