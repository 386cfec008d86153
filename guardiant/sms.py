"""SMS delivery through AWS SNS."""

import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from guardiant.config import (
    AWS_ACCESS_KEY,
    AWS_SECRET,
    AWS_REGION,
    SMS_SENDER_ID,
)


logger = logging.getLogger(__name__)


class SmsDeliveryError(Exception):
    pass


class SnsSmsGateway:

    def __init__(self, client, sender_id: str = SMS_SENDER_ID):
        self.client = client
        self.sender_id = sender_id

    def send(self, phone_number: str, body: str) -> str:

        try:
            res = self.client.publish(
                PhoneNumber=phone_number,
                Message=body,
                MessageAttributes={
                    "AWS.SNS.SMS.SenderID": {
                        "DataType": "String",
                        "StringValue": self.sender_id,
                    },
                    "AWS.SNS.SMS.SMSType": {
                        "DataType": "String",
                        "StringValue": "Transactional",
                    },
                },
            )

        except (ClientError, BotoCoreError) as e:
            logger.error("SMS to %s failed: %s", phone_number, e)
            raise SmsDeliveryError(str(e)) from e

        logger.info("SMS sent to %s, id=%s", phone_number, res.get("MessageId"))

        return res.get("MessageId")


def build_sms_gateway():

    sns = boto3.client(
        "sns",
        aws_access_key_id=AWS_ACCESS_KEY,
        aws_secret_access_key=AWS_SECRET,
        region_name=AWS_REGION,
    )

    return SnsSmsGateway(sns)
