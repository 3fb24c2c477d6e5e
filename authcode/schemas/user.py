from pydantic import BaseModel, EmailStr


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    confirm_password: str

    class Config:
        title = "SignupRequest"
